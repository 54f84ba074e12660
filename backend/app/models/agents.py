"""Typed inputs and outputs for each generation kind."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from .state import AgeBand, EmotionLabel, RegulationEffectiveness, utcnow


# ==================== Safety ====================

class SafetyResult(BaseModel):
    """Outcome of the content safety pipeline."""
    passed: bool
    flags: list[str] = Field(default_factory=list)
    reason: Optional[str] = None
    keyword_violations: Optional[list[str]] = None
    toxicity_score: Optional[float] = None


# ==================== Observer (analysis) ====================

class EmotionTrajectory(BaseModel):
    start: EmotionLabel
    end: Optional[EmotionLabel] = None


class ObserverOutput(BaseModel):
    """Therapeutic insight about one completed round."""
    round_id: str
    story_theme: str
    emotion_trajectory: EmotionTrajectory
    intensity_delta: int = Field(ge=-4, le=4)
    regulation_effectiveness: RegulationEffectiveness
    contextual_insights: list[str] = Field(default_factory=list)
    recommended_next_theme: str
    recommended_emotion_focus: EmotionLabel
    recommended_complexity: int = Field(ge=1, le=5)
    confidence_score: float = Field(ge=0, le=1)


class ObserverInput(BaseModel):
    round_id: str
    round_number: int = Field(ge=1)
    story_text: str = Field(min_length=1)
    story_theme: str
    target_emotion: EmotionLabel
    labeled_emotion: EmotionLabel
    pre_intensity: int = Field(ge=1, le=5)
    post_intensity: int = Field(ge=1, le=5)
    script_name: str = "No script used"
    reflection_text: Optional[str] = None
    previous_context: Optional[ObserverOutput] = None


# ==================== Story ====================

class StoryInput(BaseModel):
    child_id: str
    session_id: Optional[str] = None
    round_number: int = Field(ge=1)
    observer_summary: Optional[ObserverOutput] = None
    recommended_emotion: Optional[EmotionLabel] = None
    recommended_theme: Optional[str] = None
    recommended_complexity: Optional[int] = Field(default=None, ge=1, le=5)


class StoryOutput(BaseModel):
    story_text: str
    target_emotion: EmotionLabel
    theme: str
    # Range is enforced by the safety pipeline, not at parse time
    complexity_score: int
    contextual_tie: Optional[str] = None


# ==================== Script ====================

class AdaptedScript(BaseModel):
    name: str
    steps: list[str]
    duration_seconds: int
    adaptation_note: str = ""


class AlternativeScript(BaseModel):
    name: str
    brief_description: str = ""


class ScriptInput(BaseModel):
    child_id: str
    round_number: int = Field(ge=1)
    labeled_emotion: EmotionLabel
    pre_intensity: int = Field(ge=1, le=5)
    observer_insights: Optional[ObserverOutput] = None
    effective_scripts_history: list[str] = Field(default_factory=list)


class ScriptOutput(BaseModel):
    primary_script: AdaptedScript
    alternative_scripts: list[AlternativeScript] = Field(default_factory=list)


# ==================== Praise ====================

class PraiseInput(BaseModel):
    child_nickname: str = Field(min_length=1, max_length=50)
    age_band: Optional[AgeBand] = None
    labeled_emotion: EmotionLabel
    is_correct: bool
    pre_intensity: int = Field(ge=1, le=5)
    post_intensity: int = Field(ge=1, le=5)
    script_used: str = "No script used"
    round_number: int = Field(ge=1)
    total_rounds: int = Field(default=5, ge=1, le=10)
    observer_analysis: Optional[ObserverOutput] = None
    round_id: Optional[str] = None

    @property
    def intensity_delta(self) -> int:
        return self.post_intensity - self.pre_intensity


class PraiseOutput(BaseModel):
    praise_message: str
    highlights: list[str] = Field(default_factory=list)
    encouragement_focus: str = ""
    badge_emoji: Optional[str] = None


# ==================== Metadata ====================

class GenerationMetadata(BaseModel):
    """Per-stage record attached to the round and the audit log."""
    agent_type: str
    model_version: str
    generation_timestamp: datetime = Field(default_factory=utcnow)
    generation_time_ms: int
    tokens_used: Optional[int] = None
    safety_flags: list[str] = Field(default_factory=list)
    fallback_used: bool
    error_message: Optional[str] = None


class GenerationOutcome(BaseModel):
    """What every generation call returns, generated or fallback."""
    content: dict
    metadata: GenerationMetadata
    used_fallback: bool
    safety_result: SafetyResult
