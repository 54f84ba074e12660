"""Generation orchestrator.

Every content kind goes through the same LangGraph pipeline (generate, safety
check, fallback, finalize) under its own deadline. Callers always get usable
content back; failures surface only as ``used_fallback`` and the safety flags.
"""
import logging
import time
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError

from app.agents import LLMClient
from app.agents.llm import model_for
from app.agents.fallback import fallback_praise
from app.agents.prompts import FALLBACK_SCRIPT, FALLBACK_STORY
from app.config import settings
from app.errors import NotFoundError
from app.graph.workflow import create_workflow
from app.models import (
    ContentKind,
    GenerationMetadata,
    GenerationOutcome,
    ObserverInput,
    PraiseInput,
    SafetyResult,
    ScriptInput,
    StoryInput,
    create_generation_state,
)
from .audit import audit_log
from .catalog import catalog_service
from .session_service import session_service

logger = logging.getLogger(__name__)


def default_deadlines() -> dict[ContentKind, float]:
    return {
        ContentKind.ANALYSIS: settings.observer_timeout,
        ContentKind.STORY: settings.story_timeout,
        ContentKind.SCRIPT: settings.script_timeout,
        ContentKind.PRAISE: settings.praise_timeout,
    }


# ==================== Fallback content ====================

def fallback_analysis(data: ObserverInput) -> dict:
    """Neutral, rule-based analysis used when the observer cannot run."""
    delta = data.post_intensity - data.pre_intensity
    if delta <= -2:
        effectiveness = "high"
    elif delta == -1:
        effectiveness = "medium"
    else:
        effectiveness = "low"
    return {
        "round_id": data.round_id,
        "story_theme": data.story_theme,
        "emotion_trajectory": {"start": data.labeled_emotion.value, "end": None},
        "intensity_delta": delta,
        "regulation_effectiveness": effectiveness,
        "contextual_insights": [],
        "recommended_next_theme": data.story_theme,
        "recommended_emotion_focus": data.labeled_emotion.value,
        "recommended_complexity": 2,
        "confidence_score": 0.0,
    }


def fallback_story(age_band: Optional[str], emotion: Optional[str]) -> dict:
    if age_band:
        try:
            story = catalog_service.find_story(age_band, emotion or "happy")
        except SQLAlchemyError:
            logger.exception("Catalog lookup for fallback story failed")
            story = None
        if story is not None:
            return {
                "story_text": story.text,
                "target_emotion": story.emotion,
                "theme": story.title,
                "complexity_score": story.complexity_score,
            }
    return dict(FALLBACK_STORY)


def fallback_script(base_scripts: list) -> dict:
    if base_scripts:
        script = base_scripts[0]
        primary = {
            "name": script.name,
            "steps": list(script.steps),
            "duration_seconds": script.duration_seconds,
            "adaptation_note": "Using evidence-based static script",
        }
    else:
        primary = {**FALLBACK_SCRIPT, "steps": list(FALLBACK_SCRIPT["steps"]),
                   "adaptation_note": "Fallback script"}
    return {"primary_script": primary, "alternative_scripts": []}


# ==================== Orchestrator ====================

class GenerationOrchestrator:
    """Runs one generation per call and audits every outcome."""

    def __init__(self, client=None, deadlines: Optional[dict] = None):
        self.client = client or LLMClient()
        self.deadlines = {**default_deadlines(), **(deadlines or {})}
        self.graph = create_workflow()

    async def _run(
        self,
        kind: ContentKind,
        input_context: dict,
        user_payload: dict,
        fallback: dict,
        round_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> GenerationOutcome:
        state = create_generation_state(
            kind=kind,
            input_context=input_context,
            user_payload=user_payload,
            fallback=fallback,
            started_at=time.monotonic(),
        )
        state["model_version"] = model_for(kind.value)

        config = {"configurable": {"client": self.client, "deadline": self.deadlines[kind]}}
        result = await self.graph.ainvoke(state, config=config)

        safety_result = SafetyResult.model_validate(result["safety_result"])
        return self._complete(
            kind, input_context, result["output"], safety_result,
            used_fallback=result["fallback_used"],
            model_version=result["model_version"],
            generation_time_ms=result["generation_time_ms"],
            tokens_used=result["tokens_used"],
            error_message=result["error"],
            round_id=round_id,
            session_id=session_id,
        )

    def _complete(
        self,
        kind: ContentKind,
        input_context: dict,
        content: dict,
        safety_result: SafetyResult,
        used_fallback: bool,
        model_version: str,
        generation_time_ms: int,
        tokens_used: Optional[int] = None,
        error_message: Optional[str] = None,
        round_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> GenerationOutcome:
        metadata = GenerationMetadata(
            agent_type=kind.agent_type,
            model_version=model_version,
            generation_time_ms=generation_time_ms,
            tokens_used=tokens_used,
            safety_flags=safety_result.flags,
            fallback_used=used_fallback,
            error_message=error_message,
        )
        if used_fallback:
            logger.info("%s served fallback content (%s)", kind.value, ", ".join(safety_result.flags))

        audit_log.spawn(
            kind, input_context, content, metadata,
            round_id=round_id, session_id=session_id,
        )
        return GenerationOutcome(
            content=content,
            metadata=metadata,
            used_fallback=used_fallback,
            safety_result=safety_result,
        )

    async def observe(self, data: ObserverInput, session_id: Optional[str] = None) -> GenerationOutcome:
        """Analyze one completed round."""
        input_context = data.model_dump(mode="json")
        return await self._run(
            ContentKind.ANALYSIS,
            input_context,
            user_payload=input_context,
            fallback=fallback_analysis(data),
            round_id=data.round_id,
            session_id=session_id,
        )

    async def generate_story(self, data: StoryInput) -> GenerationOutcome:
        """
        Generate a story for the child's next round.

        The child's age band is required. A missing child is an error; a
        failed lookup or an unset age band serves a static story without
        calling the provider.
        """
        input_context = data.model_dump(mode="json")
        started = time.monotonic()

        try:
            child = session_service.get_child(data.child_id)
            lookup_failed = False
        except SQLAlchemyError:
            logger.exception("Child lookup failed for story generation")
            child, lookup_failed = None, True

        if child is None and not lookup_failed:
            raise NotFoundError("Child not found")

        age_band = child.age_band if child is not None else None
        emotion = data.recommended_emotion.value if data.recommended_emotion else None
        if data.observer_summary is not None:
            emotion = data.observer_summary.recommended_emotion_focus.value

        if not age_band:
            safety_result = SafetyResult(
                passed=False,
                flags=["age_band_unavailable"],
                reason="Child age band could not be determined",
            )
            return self._complete(
                ContentKind.STORY, input_context, fallback_story(None, emotion), safety_result,
                used_fallback=True,
                model_version="static",
                generation_time_ms=int((time.monotonic() - started) * 1000),
                round_id=None,
                session_id=data.session_id,
            )

        summary = data.observer_summary
        if summary is not None:
            guidance = {
                "recommended_theme": summary.recommended_next_theme,
                "recommended_emotion": summary.recommended_emotion_focus.value,
                "recommended_complexity": summary.recommended_complexity,
                "contextual_insights": summary.contextual_insights,
            }
        else:
            guidance = {
                "recommended_theme": data.recommended_theme or "everyday challenge",
                "recommended_emotion": emotion or "happy",
                "recommended_complexity": data.recommended_complexity or 2,
            }

        try:
            examples = catalog_service.example_stories(age_band)
        except SQLAlchemyError:
            examples = []

        payload = {
            "child_profile": {"age_band": age_band, "round_number": data.round_number},
            "observer_guidance": guidance,
            "example_stories_for_reference": [
                {"text": s.text, "emotion": s.emotion, "age_band": s.age_band} for s in examples
            ],
        }
        return await self._run(
            ContentKind.STORY, input_context, payload,
            fallback=fallback_story(age_band, emotion),
            session_id=data.session_id,
        )

    async def generate_script(
        self,
        data: ScriptInput,
        round_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> GenerationOutcome:
        """
        Adapt a regulation script to the child's emotion and history.

        A missing child is an error. A failed child lookup serves the static
        script for the emotion without calling the provider.
        """
        input_context = data.model_dump(mode="json")
        started = time.monotonic()

        try:
            child = session_service.get_child(data.child_id)
            lookup_failed = False
        except SQLAlchemyError:
            logger.exception("Child lookup failed for script generation")
            child, lookup_failed = None, True

        if child is None and not lookup_failed:
            raise NotFoundError("Child not found")

        emotion = data.labeled_emotion.value
        try:
            base_scripts = catalog_service.get_scripts_for_emotion(emotion)
        except SQLAlchemyError:
            logger.exception("Script catalog lookup failed")
            base_scripts = []

        if child is None:
            safety_result = SafetyResult(
                passed=False,
                flags=["child_lookup_failed"],
                reason="Child profile could not be loaded",
            )
            return self._complete(
                ContentKind.SCRIPT, input_context, fallback_script(base_scripts), safety_result,
                used_fallback=True,
                model_version="static",
                generation_time_ms=int((time.monotonic() - started) * 1000),
                round_id=round_id,
                session_id=session_id,
            )

        insights = data.observer_insights
        payload = {
            "child_profile": {"age_band": child.age_band, "round_number": data.round_number},
            "current_state": {"labeled_emotion": emotion, "pre_intensity": data.pre_intensity},
            "observer_insights": {
                "regulation_effectiveness": insights.regulation_effectiveness.value,
                "contextual_insights": insights.contextual_insights,
            } if insights else None,
            "effective_scripts_history": data.effective_scripts_history,
            "base_scripts_for_reference": [
                {
                    "name": s.name,
                    "description": s.description,
                    "steps": s.steps,
                    "duration_seconds": s.duration_seconds,
                }
                for s in base_scripts
            ],
        }
        return await self._run(
            ContentKind.SCRIPT, input_context, payload,
            fallback=fallback_script(base_scripts),
            round_id=round_id,
            session_id=session_id,
        )

    async def generate_praise(self, data: PraiseInput, session_id: Optional[str] = None) -> GenerationOutcome:
        """Personalized praise for a completed round."""
        input_context = data.model_dump(mode="json")
        payload = {
            "child_profile": {
                "nickname": data.child_nickname,
                "age_band": data.age_band.value if data.age_band else None,
            },
            "round_performance": {
                "round_number": data.round_number,
                "total_rounds": data.total_rounds,
                "labeled_emotion": data.labeled_emotion.value,
                "is_correct": data.is_correct,
                "pre_intensity": data.pre_intensity,
                "post_intensity": data.post_intensity,
                "intensity_delta": data.intensity_delta,
                "script_used": data.script_used,
            },
            "observer_analysis": data.observer_analysis.model_dump(mode="json")
            if data.observer_analysis else None,
        }
        return await self._run(
            ContentKind.PRAISE, input_context, payload,
            fallback=fallback_praise(data.child_nickname),
            round_id=data.round_id,
            session_id=session_id,
        )
