"""Idempotent round persistence.

Round creation is keyed on ``(session_id, round_number)``. Duplicate requests,
whether sequential retries or concurrent races, resolve to the same row: the
unique constraint decides the winner and the loser re-reads it.
"""
import logging
from typing import Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.db import engine
from app.errors import (
    DatabaseError,
    NotFoundError,
    SessionCompletedError,
    ValidationFailedError,
)
from app.models import (
    Round,
    RoundUpdate,
    Session as SessionModel,
    Story,
    utcnow,
)

logger = logging.getLogger(__name__)


class RoundStore:
    """Creates, updates and reads emotion rounds."""

    @staticmethod
    def _find(db: Session, session_id: str, round_number: int) -> Optional[Round]:
        statement = select(Round).where(
            Round.session_id == session_id,
            Round.round_number == round_number,
        )
        return db.exec(statement).first()

    @staticmethod
    def find(session_id: str, round_number: int) -> Optional[Round]:
        with Session(engine) as db:
            return RoundStore._find(db, session_id, round_number)

    @staticmethod
    def find_by_id(round_id: str) -> Optional[Round]:
        with Session(engine) as db:
            return db.get(Round, round_id)

    @staticmethod
    def create_round(
        session_id: str,
        round_number: int,
        story_id: Optional[str] = None,
        generated_story: Optional[dict] = None,
        generation_metadata: Optional[dict] = None,
    ) -> tuple[Round, bool]:
        """
        Create a round, or return the existing one for the same number.

        Returns ``(round, created)``. ``created`` is False when the row
        already existed or another caller inserted it first.
        """
        with Session(engine) as db:
            session = db.get(SessionModel, session_id)
            if session is None:
                raise NotFoundError("Session not found")
            if not 1 <= round_number <= session.total_rounds:
                raise ValidationFailedError(
                    f"round_number must be between 1 and {session.total_rounds}",
                    details={"round_number": round_number},
                )

            existing = RoundStore._find(db, session_id, round_number)
            if existing is not None:
                return existing, False

            if session.is_closed:
                raise SessionCompletedError("Session already completed")

            round_ = Round(
                session_id=session_id,
                round_number=round_number,
                story_id=story_id,
                generated_story=generated_story,
                generation_metadata=generation_metadata,
            )
            db.add(round_)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info(
                    "Round %s of session %s created concurrently, returning existing row",
                    round_number, session_id,
                )
                existing = RoundStore._find(db, session_id, round_number)
                if existing is None:
                    raise DatabaseError("Round insert conflicted but no row was found")
                return existing, False
            except SQLAlchemyError as exc:
                db.rollback()
                raise DatabaseError("Failed to create round", details=str(exc)) from exc

            db.refresh(round_)
            return round_, True

    @staticmethod
    def update_round(round_id: str, data: RoundUpdate) -> tuple[Round, bool]:
        """
        Merge learner input into a round in one transaction.

        Returns ``(round, just_completed)``. ``just_completed`` is True only
        for the update that supplied the last of label and both intensities.
        """
        changes = data.model_dump(exclude_none=True, mode="json")

        with Session(engine) as db:
            round_ = db.exec(select(Round).where(Round.id == round_id).with_for_update()).first()
            if round_ is None:
                raise NotFoundError("Round not found")

            session = db.exec(
                select(SessionModel).where(SessionModel.id == round_.session_id).with_for_update()
            ).first()
            if session is None:
                raise NotFoundError("Session not found")
            if session.is_closed:
                raise SessionCompletedError("Session already completed")

            for key, value in changes.items():
                setattr(round_, key, value)

            if "labeled_emotion" in changes:
                target = RoundStore._target_emotion(db, round_)
                if target is not None:
                    round_.is_correct = round_.labeled_emotion == target

            just_completed = False
            if (
                round_.completed_at is None
                and round_.labeled_emotion is not None
                and round_.pre_intensity is not None
                and round_.post_intensity is not None
            ):
                round_.completed_at = utcnow()
                just_completed = True
                session.completed_rounds = min(session.completed_rounds + 1, session.total_rounds)
                if session.completed_rounds >= session.total_rounds and session.completed_at is None:
                    session.completed_at = utcnow()
                db.add(session)

            db.add(round_)
            try:
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise DatabaseError("Failed to update round", details=str(exc)) from exc
            db.refresh(round_)

        if just_completed:
            logger.info("Round %s of session %s completed", round_.round_number, round_.session_id)
        return round_, just_completed

    @staticmethod
    def _target_emotion(db: Session, round_: Round) -> Optional[str]:
        if round_.story_id:
            story = db.get(Story, round_.story_id)
            if story is not None:
                return story.emotion
        if round_.generated_story:
            return round_.generated_story.get("target_emotion")
        return None

    @staticmethod
    def record_stage_metadata(round_id: str, stage: str, metadata: dict) -> Round:
        """Attach per-stage generation metadata to a round."""
        with Session(engine) as db:
            round_ = db.exec(select(Round).where(Round.id == round_id).with_for_update()).first()
            if round_ is None:
                raise NotFoundError("Round not found")
            merged = dict(round_.generation_metadata or {})
            merged[stage] = metadata
            round_.generation_metadata = merged
            db.add(round_)
            db.commit()
            db.refresh(round_)
            return round_

    @staticmethod
    def record_praise(round_id: str, message: str, metadata: Optional[dict] = None) -> Round:
        """
        Store generated praise on a round.

        Praise is produced after the round completes, so this is allowed on
        closed sessions.
        """
        with Session(engine) as db:
            round_ = db.exec(select(Round).where(Round.id == round_id).with_for_update()).first()
            if round_ is None:
                raise NotFoundError("Round not found")
            round_.praise_message = message
            if metadata is not None:
                merged = dict(round_.generation_metadata or {})
                merged["praise"] = metadata
                round_.generation_metadata = merged
            db.add(round_)
            db.commit()
            db.refresh(round_)
            return round_


round_store = RoundStore()
