"""Append-only audit log of generation calls."""
import asyncio
import logging
from typing import Optional
from sqlmodel import Session, select

from app.db import engine
from app.models import AgentGeneration, ContentKind, GenerationMetadata
from .background import background

logger = logging.getLogger(__name__)


class AuditLog:
    """Writes and reads ``AgentGeneration`` rows."""

    @staticmethod
    def record(
        kind: ContentKind,
        input_context: dict,
        output_content: dict,
        metadata: GenerationMetadata,
        round_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> AgentGeneration:
        row = AgentGeneration(
            round_id=round_id,
            session_id=session_id,
            agent_type=kind.agent_type,
            input_context=input_context,
            output_content=output_content,
            model_version=metadata.model_version,
            safety_flags=metadata.safety_flags,
            fallback_used=metadata.fallback_used,
            generation_time_ms=metadata.generation_time_ms,
            tokens_used=metadata.tokens_used,
        )
        with Session(engine) as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            return row

    def spawn(self, *args, **kwargs) -> asyncio.Task:
        """Record in a detached task. Failures are logged by the task registry."""
        return background.spawn(asyncio.to_thread(self.record, *args, **kwargs), name="audit")

    @staticmethod
    def list_recent(
        agent_type: Optional[str] = None,
        session_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[AgentGeneration]:
        with Session(engine) as db:
            statement = select(AgentGeneration).order_by(AgentGeneration.created_at.desc())
            if agent_type:
                statement = statement.where(AgentGeneration.agent_type == agent_type)
            if session_id:
                statement = statement.where(AgentGeneration.session_id == session_id)
            return list(db.exec(statement.limit(limit)).all())

    @staticmethod
    def fallback_rate(agent_type: str) -> Optional[float]:
        """Share of calls for ``agent_type`` that served fallback content."""
        with Session(engine) as db:
            rows = db.exec(
                select(AgentGeneration.fallback_used).where(AgentGeneration.agent_type == agent_type)
            ).all()
        if not rows:
            return None
        return sum(1 for used in rows if used) / len(rows)


audit_log = AuditLog()
