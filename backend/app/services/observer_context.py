"""Per-session accumulator of observer analyses, indexed by round."""
import logging
from typing import Optional
from sqlmodel import Session, select

from app.db import engine
from app.errors import NotFoundError
from app.models import Session as SessionModel

logger = logging.getLogger(__name__)


class ObserverContextStore:
    """
    Reads and writes ``Session.cumulative_context``.

    Slot ``round_number - 1`` holds the analysis of that round. Analyses may
    land out of order, so unfilled slots stay ``None``.
    """

    @staticmethod
    def write(session_id: str, round_number: int, analysis: dict) -> list[Optional[dict]]:
        if round_number < 1:
            raise ValueError("round_number must be >= 1")

        with Session(engine) as db:
            session = db.exec(
                select(SessionModel).where(SessionModel.id == session_id).with_for_update()
            ).first()
            if session is None:
                raise NotFoundError("Session not found")

            context = list(session.cumulative_context or [])
            if len(context) < round_number:
                context.extend([None] * (round_number - len(context)))
            context[round_number - 1] = analysis

            session.cumulative_context = context
            db.add(session)
            db.commit()

        logger.debug("Stored analysis for round %d of session %s", round_number, session_id)
        return context

    @staticmethod
    def read_prior(session_id: str, round_number: int) -> Optional[dict]:
        """Analysis of the round before ``round_number``, if one was stored."""
        if round_number <= 1:
            return None
        with Session(engine) as db:
            session = db.get(SessionModel, session_id)
        if session is None:
            return None
        context = session.cumulative_context or []
        index = round_number - 2
        return context[index] if index < len(context) else None


observer_context = ObserverContextStore()
