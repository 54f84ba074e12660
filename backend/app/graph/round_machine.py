"""Round state machine.

One round walks a child through story, label, intensity, regulation,
reflection and praise. ``transition`` is a pure lookup in an explicit table;
``RoundDriver`` owns the side effects and feeds their outcome back as
``DONE`` or ``FAILED`` events.
"""
import asyncio
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple, Optional

from app.agents.fallback import fallback_praise, static_praise
from app.errors import CoachError, InvalidTransitionError, ValidationFailedError
from app.models import (
    ObserverInput,
    ObserverOutput,
    PraiseInput,
    RoundUpdate,
    ScriptInput,
    StoryInput,
)
from app.services.background import background
from app.services.catalog import GENERIC_SCRIPTS, catalog_service
from app.services.observer_context import observer_context
from app.services.round_store import round_store

if TYPE_CHECKING:
    from app.services.orchestrator import GenerationOrchestrator

logger = logging.getLogger(__name__)


class RoundState(str, Enum):
    GREETING = "greeting"
    PRESENTING_STORY = "presenting_story"
    LABELING_EMOTION = "labeling_emotion"
    CHECKING_CORRECTNESS = "checking_correctness"
    RATING_INTENSITY = "rating_intensity"
    FETCHING_SCRIPTS = "fetching_scripts"
    OFFERING_REGULATION = "offering_regulation"
    RUNNING_SCRIPT = "running_script"
    REFLECTING = "reflecting"
    UPDATING_ROUND = "updating_round"
    GENERATING_PRAISE = "generating_praise"
    PRAISING = "praising"
    COMPLETED = "completed"
    ERROR = "error"


class EventType(str, Enum):
    START = "START"
    STORY_VIEWED = "STORY_VIEWED"
    EMOTION_LABELED = "EMOTION_LABELED"
    INTENSITY_RATED = "INTENSITY_RATED"
    SCRIPT_SELECTED = "SCRIPT_SELECTED"
    SKIP = "SKIP"
    SCRIPT_COMPLETED = "SCRIPT_COMPLETED"
    REFLECTION_COMPLETED = "REFLECTION_COMPLETED"
    PRAISE_ACKNOWLEDGED = "PRAISE_ACKNOWLEDGED"
    RETRY = "RETRY"
    # Outcomes of effects
    DONE = "DONE"
    FAILED = "FAILED"


class Effect(str, Enum):
    NONE = "none"
    CREATE_ROUND = "create_round"
    CHECK_CORRECTNESS = "check_correctness"
    FETCH_SCRIPTS = "fetch_scripts"
    UPDATE_ROUND = "update_round"
    GENERATE_PRAISE = "generate_praise"


class Transition(NamedTuple):
    state: RoundState
    effect: Effect = Effect.NONE


S, E = RoundState, EventType

TRANSITIONS: dict[tuple[RoundState, EventType], Transition] = {
    (S.GREETING, E.START): Transition(S.PRESENTING_STORY, Effect.CREATE_ROUND),
    (S.PRESENTING_STORY, E.DONE): Transition(S.PRESENTING_STORY),
    (S.PRESENTING_STORY, E.FAILED): Transition(S.ERROR),
    (S.PRESENTING_STORY, E.STORY_VIEWED): Transition(S.LABELING_EMOTION),
    (S.LABELING_EMOTION, E.EMOTION_LABELED): Transition(S.CHECKING_CORRECTNESS, Effect.CHECK_CORRECTNESS),
    (S.CHECKING_CORRECTNESS, E.DONE): Transition(S.RATING_INTENSITY),
    (S.CHECKING_CORRECTNESS, E.FAILED): Transition(S.ERROR),
    (S.RATING_INTENSITY, E.INTENSITY_RATED): Transition(S.FETCHING_SCRIPTS, Effect.FETCH_SCRIPTS),
    (S.FETCHING_SCRIPTS, E.DONE): Transition(S.OFFERING_REGULATION),
    # A failed lookup still offers the generic scripts
    (S.FETCHING_SCRIPTS, E.FAILED): Transition(S.OFFERING_REGULATION),
    (S.OFFERING_REGULATION, E.SCRIPT_SELECTED): Transition(S.RUNNING_SCRIPT),
    (S.OFFERING_REGULATION, E.SKIP): Transition(S.REFLECTING),
    (S.RUNNING_SCRIPT, E.SCRIPT_COMPLETED): Transition(S.REFLECTING),
    (S.REFLECTING, E.REFLECTION_COMPLETED): Transition(S.UPDATING_ROUND, Effect.UPDATE_ROUND),
    (S.UPDATING_ROUND, E.DONE): Transition(S.GENERATING_PRAISE, Effect.GENERATE_PRAISE),
    (S.UPDATING_ROUND, E.FAILED): Transition(S.ERROR),
    (S.GENERATING_PRAISE, E.DONE): Transition(S.PRAISING),
    # Canned praise is used instead
    (S.GENERATING_PRAISE, E.FAILED): Transition(S.PRAISING),
    (S.PRAISING, E.PRAISE_ACKNOWLEDGED): Transition(S.COMPLETED),
    (S.ERROR, E.RETRY): Transition(S.GREETING),
}

del S, E


def transition(state: RoundState, event: EventType) -> Transition:
    """Next state and effect for ``event`` in ``state``."""
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"Event {event.value} is not valid in state {state.value}",
            details={"state": state.value, "event": event.value},
        ) from None


def allowed_events(state: RoundState) -> list[EventType]:
    return [event for (source, event) in TRANSITIONS if source is state]


@dataclass
class RoundContext:
    """Everything the driver knows about the session and the current round."""
    session_id: str
    child_id: str
    child_nickname: str
    story_ids: list[str] = field(default_factory=list)
    age_band: Optional[str] = None
    round_number: int = 1
    total_rounds: int = 5
    agent_enabled: bool = False

    # Per-round
    round_id: Optional[str] = None
    story: Optional[dict] = None
    labeled_emotion: Optional[str] = None
    is_correct: Optional[bool] = None
    pre_intensity: Optional[int] = None
    post_intensity: Optional[int] = None
    scripts: list[dict] = field(default_factory=list)
    adapted_script: Optional[dict] = None
    selected_script_id: Optional[str] = None
    selected_script_name: Optional[str] = None
    reflection_text: Optional[str] = None
    praise: Optional[dict] = None
    round_completed: bool = False
    session_completed: bool = False
    last_error: Optional[str] = None

    @property
    def is_last_round(self) -> bool:
        return self.round_number >= self.total_rounds

    def reset_round(self) -> None:
        for name in (
            "round_id", "story", "labeled_emotion", "is_correct", "pre_intensity",
            "post_intensity", "adapted_script", "selected_script_id",
            "selected_script_name", "reflection_text", "praise", "last_error",
        ):
            setattr(self, name, None)
        self.scripts = []
        self.round_completed = False


class RoundDriver:
    """
    Runs a round through the transition table.

    Each effect runs as its own asyncio task and is awaited before the next
    event is accepted, so at most one external call is in flight per round.
    """

    def __init__(self, context: RoundContext, orchestrator: Optional["GenerationOrchestrator"] = None):
        self.context = context
        self.orchestrator = orchestrator
        self.state = RoundState.GREETING
        self.history: list[tuple[RoundState, EventType, RoundState]] = []
        self._task: Optional[asyncio.Task] = None
        self._handlers = {
            Effect.CREATE_ROUND: self._create_round,
            Effect.CHECK_CORRECTNESS: self._check_correctness,
            Effect.FETCH_SCRIPTS: self._fetch_scripts,
            Effect.UPDATE_ROUND: self._update_round,
            Effect.GENERATE_PRAISE: self._generate_praise,
        }

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    async def send(self, event: EventType, **data: Any) -> RoundState:
        """Deliver a learner event and run any effects it triggers."""
        if event in (EventType.DONE, EventType.FAILED):
            raise InvalidTransitionError(f"{event.value} is reserved for effect outcomes")
        if self.busy:
            raise InvalidTransitionError("An operation is still running for this round")

        step = self._step(event)
        self._absorb(event, data)

        while step.effect is not Effect.NONE:
            try:
                outcome = await self._run_effect(step.effect)
            except asyncio.CancelledError:
                # The caller was cancelled; settle the stage before unwinding
                self._step(EventType.FAILED)
                raise
            step = self._step(outcome)
        return self.state

    def _step(self, event: EventType) -> Transition:
        step = transition(self.state, event)
        self.history.append((self.state, event, step.state))
        self.state = step.state
        return step

    def _absorb(self, event: EventType, data: dict) -> None:
        ctx = self.context
        if event is EventType.EMOTION_LABELED:
            ctx.labeled_emotion = str(data["emotion"])
        elif event is EventType.INTENSITY_RATED:
            ctx.pre_intensity = int(data["intensity"])
        elif event is EventType.SCRIPT_SELECTED:
            ctx.selected_script_id = data.get("script_id")
            ctx.selected_script_name = data.get("script_name")
        elif event is EventType.REFLECTION_COMPLETED:
            ctx.post_intensity = int(data["post_intensity"])
            ctx.reflection_text = data.get("reflection_text")
        elif event is EventType.RETRY:
            ctx.reset_round()

    async def _run_effect(self, effect: Effect) -> EventType:
        self._task = asyncio.create_task(self._handlers[effect]())
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Round effect %s was cancelled", effect.value)
            self._on_failed(effect, "cancelled")
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return EventType.FAILED
        except CoachError as exc:
            logger.warning("Round effect %s failed: %s", effect.value, exc.message)
            self._on_failed(effect, exc.message)
            return EventType.FAILED
        except Exception as exc:
            logger.exception("Round effect %s failed", effect.value)
            self._on_failed(effect, str(exc))
            return EventType.FAILED
        finally:
            self._task = None
        return EventType.DONE

    def _on_failed(self, effect: Effect, message: str) -> None:
        ctx = self.context
        ctx.last_error = message
        if effect is Effect.FETCH_SCRIPTS and not ctx.scripts:
            ctx.scripts = copy.deepcopy(GENERIC_SCRIPTS)
        elif effect is Effect.GENERATE_PRAISE:
            ctx.praise = fallback_praise(ctx.child_nickname)

    def cancel(self) -> None:
        """Cancel the effect in flight; the round settles as if the effect failed."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def next_round(self) -> None:
        """Advance to the following round once this one has completed."""
        if self.state is not RoundState.COMPLETED:
            raise InvalidTransitionError("Round is not completed yet")
        if self.context.is_last_round:
            raise InvalidTransitionError("Session has no more rounds")
        self.context.round_number += 1
        self.context.reset_round()
        self.state = RoundState.GREETING

    # ==================== Effects ====================

    def _prior_analysis(self) -> Optional[ObserverOutput]:
        prior = observer_context.read_prior(self.context.session_id, self.context.round_number)
        return ObserverOutput.model_validate(prior) if prior else None

    async def _create_round(self) -> None:
        ctx = self.context
        existing = round_store.find(ctx.session_id, ctx.round_number)

        if existing is not None:
            round_ = existing
        elif ctx.agent_enabled and self.orchestrator is not None:
            outcome = await self.orchestrator.generate_story(StoryInput(
                child_id=ctx.child_id,
                session_id=ctx.session_id,
                round_number=ctx.round_number,
                observer_summary=self._prior_analysis(),
            ))
            round_, _ = round_store.create_round(
                ctx.session_id,
                ctx.round_number,
                generated_story=outcome.content,
                generation_metadata={"story": outcome.metadata.model_dump(mode="json")},
            )
        else:
            if ctx.round_number > len(ctx.story_ids):
                raise ValidationFailedError(f"No story assigned to round {ctx.round_number}")
            round_, _ = round_store.create_round(
                ctx.session_id, ctx.round_number, story_id=ctx.story_ids[ctx.round_number - 1],
            )

        ctx.round_id = round_.id
        ctx.story = self._story_for(round_)

    @staticmethod
    def _story_for(round_) -> Optional[dict]:
        if round_.generated_story:
            story = round_.generated_story
            return {
                "text": story.get("story_text"),
                "emotion": story.get("target_emotion"),
                "theme": story.get("theme", ""),
            }
        if round_.story_id:
            story = catalog_service.get_story(round_.story_id)
            if story is not None:
                return {"text": story.text, "emotion": story.emotion, "theme": story.title}
        return None

    async def _check_correctness(self) -> None:
        ctx = self.context
        if not ctx.story or not ctx.story.get("emotion"):
            raise ValidationFailedError("Round has no story to check against")
        ctx.is_correct = ctx.labeled_emotion == ctx.story["emotion"]

    async def _fetch_scripts(self) -> None:
        ctx = self.context
        ctx.scripts = catalog_service.get_recommended_scripts(ctx.labeled_emotion, ctx.pre_intensity)

        if ctx.agent_enabled and self.orchestrator is not None:
            try:
                outcome = await self.orchestrator.generate_script(
                    ScriptInput(
                        child_id=ctx.child_id,
                        round_number=ctx.round_number,
                        labeled_emotion=ctx.labeled_emotion,
                        pre_intensity=ctx.pre_intensity,
                        observer_insights=self._prior_analysis(),
                    ),
                    round_id=ctx.round_id,
                    session_id=ctx.session_id,
                )
            except CoachError as exc:
                logger.warning("Script adaptation skipped: %s", exc.message)
                return
            ctx.adapted_script = outcome.content["primary_script"]
            round_store.record_stage_metadata(
                ctx.round_id, "script", outcome.metadata.model_dump(mode="json"),
            )

    async def _update_round(self) -> None:
        ctx = self.context
        round_, just_completed = round_store.update_round(ctx.round_id, RoundUpdate(
            labeled_emotion=ctx.labeled_emotion,
            pre_intensity=ctx.pre_intensity,
            regulation_script_id=ctx.selected_script_id,
            post_intensity=ctx.post_intensity,
        ))
        ctx.round_completed = round_.completed_at is not None
        if round_.is_correct is not None:
            ctx.is_correct = round_.is_correct
        if ctx.is_last_round and just_completed:
            ctx.session_completed = True

        if just_completed and ctx.agent_enabled and self.orchestrator is not None:
            background.spawn(self._observe(), name=f"observe-{ctx.round_id}")

    async def _observe(self) -> None:
        ctx = self.context
        story = ctx.story or {}
        outcome = await self.orchestrator.observe(
            ObserverInput(
                round_id=ctx.round_id,
                round_number=ctx.round_number,
                story_text=story.get("text") or "",
                story_theme=story.get("theme") or "",
                target_emotion=story.get("emotion"),
                labeled_emotion=ctx.labeled_emotion,
                pre_intensity=ctx.pre_intensity,
                post_intensity=ctx.post_intensity,
                script_name=ctx.selected_script_name or "No script used",
                reflection_text=ctx.reflection_text,
                previous_context=self._prior_analysis(),
            ),
            session_id=ctx.session_id,
        )
        observer_context.write(ctx.session_id, ctx.round_number, outcome.content)

    async def _generate_praise(self) -> None:
        ctx = self.context
        metadata = None
        if ctx.agent_enabled and self.orchestrator is not None:
            outcome = await self.orchestrator.generate_praise(
                PraiseInput(
                    child_nickname=ctx.child_nickname,
                    age_band=ctx.age_band,
                    labeled_emotion=ctx.labeled_emotion,
                    is_correct=bool(ctx.is_correct),
                    pre_intensity=ctx.pre_intensity,
                    post_intensity=ctx.post_intensity,
                    script_used=ctx.selected_script_name or "No script used",
                    round_number=ctx.round_number,
                    total_rounds=ctx.total_rounds,
                    observer_analysis=self._prior_analysis(),
                    round_id=ctx.round_id,
                ),
                session_id=ctx.session_id,
            )
            praise = outcome.content
            metadata = outcome.metadata.model_dump(mode="json")
        else:
            praise = static_praise(
                ctx.child_nickname,
                ctx.labeled_emotion,
                bool(ctx.is_correct),
                ctx.pre_intensity,
                ctx.post_intensity,
            )

        ctx.praise = praise
        round_store.record_praise(ctx.round_id, praise["praise_message"], metadata)
