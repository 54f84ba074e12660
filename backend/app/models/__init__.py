"""Models package."""
from .state import (
    AgeBand,
    ContentKind,
    EmotionLabel,
    GenerationState,
    Note,
    RegulationEffectiveness,
    add_note,
    create_generation_state,
    utcnow,
)
from .agents import (
    AdaptedScript,
    AlternativeScript,
    EmotionTrajectory,
    GenerationMetadata,
    GenerationOutcome,
    ObserverInput,
    ObserverOutput,
    PraiseInput,
    PraiseOutput,
    SafetyResult,
    ScriptInput,
    ScriptOutput,
    StoryInput,
    StoryOutput,
)
from .session import (
    AgentGeneration,
    Child,
    RegulationScript,
    Round,
    RoundCreate,
    RoundResponse,
    RoundUpdate,
    Session,
    SessionCreate,
    SessionResponse,
    Story,
)

__all__ = [
    "AdaptedScript",
    "AgeBand",
    "AgentGeneration",
    "AlternativeScript",
    "Child",
    "ContentKind",
    "EmotionLabel",
    "EmotionTrajectory",
    "GenerationMetadata",
    "GenerationOutcome",
    "GenerationState",
    "Note",
    "ObserverInput",
    "ObserverOutput",
    "PraiseInput",
    "PraiseOutput",
    "RegulationEffectiveness",
    "RegulationScript",
    "Round",
    "RoundCreate",
    "RoundResponse",
    "RoundUpdate",
    "SafetyResult",
    "ScriptInput",
    "ScriptOutput",
    "Session",
    "SessionCreate",
    "SessionResponse",
    "Story",
    "StoryInput",
    "StoryOutput",
    "add_note",
    "create_generation_state",
    "utcnow",
]
