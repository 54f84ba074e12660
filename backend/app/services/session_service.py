"""Session service for managing practice sessions."""
import logging
from typing import Optional
from sqlmodel import Session, select

from app.config import settings
from app.db import engine
from app.errors import NotFoundError, ValidationFailedError
from app.models import (
    Child,
    Round,
    Session as SessionModel,
    SessionCreate,
)
from .catalog import catalog_service, story_summary

logger = logging.getLogger(__name__)


class SessionService:
    """Service for creating and reading sessions."""

    @staticmethod
    def get_child(child_id: str) -> Optional[Child]:
        with Session(engine) as db:
            return db.get(Child, child_id)

    @staticmethod
    def create(data: SessionCreate) -> tuple[SessionModel, list[dict]]:
        """
        Create a session with a diverse set of stories for the child's age band.

        Returns the session and the selected stories in round order.
        """
        child = SessionService.get_child(data.child_id)
        if child is None:
            raise NotFoundError("Child not found")
        if not child.age_band:
            raise ValidationFailedError("Child has no age band")

        total = settings.rounds_per_session
        stories = catalog_service.get_random_stories(child.age_band, total)

        session = SessionModel(
            child_id=child.id,
            story_ids=[story.id for story in stories],
            total_rounds=total,
            agent_enabled=data.agent_enabled,
        )
        with Session(engine) as db:
            db.add(session)
            db.commit()
            db.refresh(session)

        logger.info("Created session %s for child %s", session.id, child.id)
        return session, [story_summary(story) for story in stories]

    @staticmethod
    def get_by_id(session_id: str) -> Optional[SessionModel]:
        """Get a session by ID."""
        with Session(engine) as db:
            return db.get(SessionModel, session_id)

    @staticmethod
    def get_rounds(session_id: str) -> list[Round]:
        with Session(engine) as db:
            statement = (
                select(Round)
                .where(Round.session_id == session_id)
                .order_by(Round.round_number)
            )
            return list(db.exec(statement).all())

    @staticmethod
    def get_detail(session_id: str) -> dict:
        """Fresh read of a session with its rounds and referenced stories."""
        session = SessionService.get_by_id(session_id)
        if session is None:
            raise NotFoundError("Session not found")

        rounds = SessionService.get_rounds(session_id)
        story_ids = list(session.story_ids or [])
        for round_ in rounds:
            if round_.story_id and round_.story_id not in story_ids:
                story_ids.append(round_.story_id)
        stories = catalog_service.get_stories_by_ids(story_ids)

        return {
            "session": session,
            "rounds": rounds,
            "stories": [story_summary(story) for story in stories],
        }

    @staticmethod
    def list_all(
        skip: int = 0,
        limit: int = 20,
        child_id: Optional[str] = None,
    ) -> list[SessionModel]:
        """List sessions, newest first."""
        with Session(engine) as db:
            statement = select(SessionModel).order_by(SessionModel.started_at.desc())

            if child_id:
                statement = statement.where(SessionModel.child_id == child_id)

            statement = statement.offset(skip).limit(limit)
            return list(db.exec(statement).all())


# Singleton instance
session_service = SessionService()
