"""Enumerations and the generation pipeline state shared by the agent nodes."""
from datetime import datetime, timezone
from enum import Enum
from typing import TypedDict
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the store persists datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EmotionLabel(str, Enum):
    """The fixed set of emotions a child can label."""
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    SCARED = "scared"
    SURPRISED = "surprised"
    DISGUSTED = "disgusted"
    CALM = "calm"


class AgeBand(str, Enum):
    """Age bands used to pick age-appropriate content."""
    YOUNG = "6-7"
    MIDDLE = "8-9"
    OLDER = "10-12"


class ContentKind(str, Enum):
    """Kinds of content produced by the generation pipeline."""
    ANALYSIS = "analysis"
    STORY = "story"
    SCRIPT = "script"
    PRAISE = "praise"

    @property
    def agent_type(self) -> str:
        """Name recorded in the audit log for this kind."""
        return {
            ContentKind.ANALYSIS: "observer",
            ContentKind.STORY: "action_story",
            ContentKind.SCRIPT: "action_script",
            ContentKind.PRAISE: "action_praise",
        }[self]


class RegulationEffectiveness(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Note(BaseModel):
    """Trace note left by a pipeline node."""
    node: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class GenerationState(TypedDict):
    """
    State passed between the generation pipeline nodes.

    One instance describes a single generation request for one content kind.
    """
    # Request
    kind: str  # ContentKind value
    input_context: dict
    user_payload: dict
    fallback: dict

    # Provider result
    output: dict | None
    model_version: str
    tokens_used: int | None
    error: str | None
    error_flag: str | None

    # Safety and outcome
    safety_result: dict | None
    fallback_used: bool
    generation_time_ms: int
    started_at: float

    # Trace
    notes: list[dict]


def create_generation_state(
    kind: "ContentKind",
    input_context: dict,
    user_payload: dict,
    fallback: dict,
    started_at: float,
) -> GenerationState:
    """Create the initial pipeline state for one generation request."""
    return GenerationState(
        kind=kind.value,
        input_context=input_context,
        user_payload=user_payload,
        fallback=fallback,
        output=None,
        model_version="",
        tokens_used=None,
        error=None,
        error_flag=None,
        safety_result=None,
        fallback_used=False,
        generation_time_ms=0,
        started_at=started_at,
        notes=[],
    )


def add_note(state: GenerationState, node: str, message: str) -> list[dict]:
    """Append a trace note and return the updated note list."""
    note = Note(node=node, message=message)
    return state["notes"] + [note.model_dump(mode="json")]
