"""Database models for sessions, rounds, catalogs and the generation audit log."""
from datetime import datetime
from typing import Optional
from uuid import uuid4
from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from .state import EmotionLabel, utcnow


def new_id() -> str:
    return str(uuid4())


# ==================== Collaborator tables (read contract) ====================

class Child(SQLModel, table=True):
    """Child profile. Only nickname and age band are read here."""

    __tablename__ = "children"

    id: str = Field(default_factory=new_id, primary_key=True)
    nickname: str
    age_band: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Story(SQLModel, table=True):
    """Static, pre-vetted story."""

    __tablename__ = "stories"

    id: str = Field(primary_key=True)
    title: str
    text: str
    emotion: str = Field(index=True)
    age_band: str = Field(index=True)
    complexity_score: int = 2


class RegulationScript(SQLModel, table=True):
    """Static, evidence-based regulation script."""

    __tablename__ = "regulation_scripts"

    id: str = Field(primary_key=True)
    name: str
    description: str = ""
    icon_emoji: str = ""
    recommended_for_emotions: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    recommended_for_intensities: list[int] = Field(default_factory=list, sa_column=Column(JSON))
    duration_seconds: int = 45
    steps: list[str] = Field(default_factory=list, sa_column=Column(JSON))


# ==================== Session and rounds ====================

class Session(SQLModel, table=True):
    """Database model for a practice session."""

    __tablename__ = "sessions"

    id: str = Field(default_factory=new_id, primary_key=True)
    child_id: str = Field(index=True)
    story_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    total_rounds: int = 5
    completed_rounds: int = 0
    agent_enabled: bool = True
    cumulative_context: list[Optional[dict]] = Field(default_factory=list, sa_column=Column(JSON))
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.completed_at is not None


class Round(SQLModel, table=True):
    """Database model for one emotion round."""

    __tablename__ = "emotion_rounds"
    __table_args__ = (
        UniqueConstraint("session_id", "round_number", name="unique_session_round"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(foreign_key="sessions.id", index=True)
    round_number: int
    story_id: Optional[str] = None
    generated_story: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    labeled_emotion: Optional[str] = None
    is_correct: Optional[bool] = None
    pre_intensity: Optional[int] = None
    post_intensity: Optional[int] = None
    regulation_script_id: Optional[str] = None
    praise_message: Optional[str] = None
    generation_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None


class AgentGeneration(SQLModel, table=True):
    """Append-only audit row for one generation call."""

    __tablename__ = "agent_generations"

    id: str = Field(default_factory=new_id, primary_key=True)
    round_id: Optional[str] = Field(default=None, index=True)
    session_id: Optional[str] = Field(default=None, index=True)
    agent_type: str = Field(index=True)
    input_context: dict = Field(default_factory=dict, sa_column=Column(JSON))
    output_content: dict = Field(default_factory=dict, sa_column=Column(JSON))
    model_version: str
    safety_flags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    fallback_used: bool = False
    generation_time_ms: Optional[int] = None
    tokens_used: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


# ==================== API schemas ====================

class SessionCreate(BaseModel):
    """Schema for creating a new session."""
    child_id: str
    agent_enabled: bool = True


class RoundCreate(BaseModel):
    """Schema for creating a round. Idempotent on (session_id, round_number)."""
    session_id: str
    round_number: int = PydanticField(ge=1)
    story_id: Optional[str] = None


class RoundUpdate(BaseModel):
    """Merge update for a round. Completion fields are derived, never sent."""

    model_config = ConfigDict(extra="forbid")

    labeled_emotion: Optional[EmotionLabel] = None
    pre_intensity: Optional[int] = PydanticField(default=None, ge=1, le=5)
    regulation_script_id: Optional[str] = None
    post_intensity: Optional[int] = PydanticField(default=None, ge=1, le=5)
    praise_message: Optional[str] = None


class RoundResponse(SQLModel):
    """Schema for round API responses."""
    id: str
    session_id: str
    round_number: int
    story_id: Optional[str]
    generated_story: Optional[dict]
    labeled_emotion: Optional[str]
    is_correct: Optional[bool]
    pre_intensity: Optional[int]
    post_intensity: Optional[int]
    regulation_script_id: Optional[str]
    praise_message: Optional[str]
    generation_metadata: Optional[dict]
    started_at: datetime
    completed_at: Optional[datetime]


class SessionResponse(SQLModel):
    """Schema for session API responses."""
    id: str
    child_id: str
    story_ids: list[str]
    total_rounds: int
    completed_rounds: int
    agent_enabled: bool
    cumulative_context: list[Optional[dict]]
    started_at: datetime
    completed_at: Optional[datetime]

