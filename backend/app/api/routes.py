"""API routes for the Emotion Coach backend."""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from app.config import settings
from app.errors import NotFoundError
from app.models import (
    EmotionLabel,
    ObserverInput,
    ObserverOutput,
    PraiseInput,
    Round,
    RoundCreate,
    RoundResponse,
    RoundUpdate,
    ScriptInput,
    SessionCreate,
    SessionResponse,
    StoryInput,
    utcnow,
)
from app.services import (
    background,
    catalog_service,
    observer_context,
    round_store,
    session_service,
)
from app.services.orchestrator import GenerationOrchestrator
from app.services.polling import RetryPoller, ThrottledFetcher

logger = logging.getLogger(__name__)

router = APIRouter()


class ObserveRequest(ObserverInput):
    """Observer input; the session is looked up from the round when omitted."""
    session_id: Optional[str] = None


_orchestrator: Optional[GenerationOrchestrator] = None


def get_orchestrator() -> GenerationOrchestrator:
    """Shared orchestrator (FastAPI dependency)."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = GenerationOrchestrator()
    return _orchestrator


def round_payload(round_: Round) -> dict:
    return RoundResponse.model_validate(round_).model_dump(mode="json")


def session_payload(session) -> dict:
    return SessionResponse.model_validate(session).model_dump(mode="json")


def generation_payload(name: str, outcome) -> dict:
    return {
        "success": True,
        name: outcome.content,
        "fallback_used": outcome.used_fallback,
        "safety_result": outcome.safety_result.model_dump(exclude_none=True),
        "generation_metadata": outcome.metadata.model_dump(mode="json"),
    }


async def run_observer(orchestrator: GenerationOrchestrator, data: ObserverInput,
                       session_id: Optional[str] = None):
    """Analyze a round and store the analysis in its session's context."""
    if session_id is None:
        round_ = round_store.find_by_id(data.round_id)
        session_id = round_.session_id if round_ else None

    outcome = await orchestrator.observe(data, session_id=session_id)
    if session_id is not None:
        observer_context.write(session_id, data.round_number, outcome.content)
    return outcome


def observer_input_for(round_: Round) -> Optional[ObserverInput]:
    """Build observer input from a completed round, or None if its story is gone."""
    if round_.generated_story:
        text = round_.generated_story.get("story_text")
        emotion = round_.generated_story.get("target_emotion")
        theme = round_.generated_story.get("theme", "")
    else:
        story = catalog_service.get_story(round_.story_id) if round_.story_id else None
        if story is None:
            return None
        text, emotion, theme = story.text, story.emotion, story.title

    script = catalog_service.get_script(round_.regulation_script_id) if round_.regulation_script_id else None
    prior = observer_context.read_prior(round_.session_id, round_.round_number)
    return ObserverInput(
        round_id=round_.id,
        round_number=round_.round_number,
        story_text=text,
        story_theme=theme,
        target_emotion=emotion,
        labeled_emotion=round_.labeled_emotion,
        pre_intensity=round_.pre_intensity,
        post_intensity=round_.post_intensity,
        script_name=script.name if script else "No script used",
        previous_context=ObserverOutput.model_validate(prior) if prior else None,
    )


# ==================== Health ====================

@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": utcnow().isoformat()}


# ==================== Sessions ====================

@router.post("/api/sessions", status_code=201)
async def create_session(request: SessionCreate):
    """Start a practice session with stories picked for the child's age band."""
    session, stories = session_service.create(request)
    return {"success": True, "session": session_payload(session), "stories": stories}


@router.get("/api/sessions/{session_id}")
async def get_session(session_id: str):
    """Session with its rounds and stories, always read fresh."""
    detail = session_service.get_detail(session_id)
    return {
        "success": True,
        "session": session_payload(detail["session"]),
        "rounds": [round_payload(r) for r in detail["rounds"]],
        "stories": detail["stories"],
    }


# ==================== Rounds ====================

@router.post("/api/rounds")
async def create_round(request: RoundCreate):
    """
    Create a round. Idempotent on (session_id, round_number).

    Returns 201 when the round was created and 200 when it already existed.
    """
    story_id = request.story_id
    if story_id is None:
        session = session_service.get_by_id(request.session_id)
        if session is None:
            raise NotFoundError("Session not found")
        if request.round_number <= len(session.story_ids or []):
            story_id = session.story_ids[request.round_number - 1]

    round_, created = round_store.create_round(request.session_id, request.round_number, story_id=story_id)
    return JSONResponse(
        status_code=201 if created else 200,
        content={"success": True, "round": round_payload(round_), "created": created},
    )


@router.patch("/api/rounds/{round_id}")
async def update_round(
    round_id: str,
    request: RoundUpdate,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Merge learner input into a round. Completing a round triggers the observer."""
    round_, just_completed = round_store.update_round(round_id, request)

    if just_completed:
        session = session_service.get_by_id(round_.session_id)
        if session is not None and session.agent_enabled:
            data = observer_input_for(round_)
            if data is not None:
                background.spawn(
                    run_observer(orchestrator, data, session_id=session.id),
                    name=f"observe-{round_.id}",
                )

    return {"success": True, "round": round_payload(round_), "completed": just_completed}


# ==================== Scripts ====================

@router.get("/api/scripts/recommended")
async def recommended_scripts(
    emotion: EmotionLabel,
    intensity: int = Query(ge=1, le=5),
):
    """Scripts for an emotion and intensity, widening the match when needed."""
    scripts = catalog_service.get_recommended_scripts(emotion.value, intensity)
    return {"success": True, "scripts": scripts}


# ==================== Generation ====================

@router.post("/api/agent/observe")
async def observe(
    request: ObserveRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Analyze a completed round and store the result in the session context."""
    data = ObserverInput.model_validate(request.model_dump(exclude={"session_id"}))
    outcome = await run_observer(orchestrator, data, session_id=request.session_id)
    return generation_payload("analysis", outcome)


@router.post("/api/agent/generate-story")
async def generate_story(
    request: StoryInput,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.generate_story(request)
    return generation_payload("story", outcome)


@router.post("/api/agent/generate-script")
async def generate_script(
    request: ScriptInput,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.generate_script(request)
    return generation_payload("script", outcome)


@router.post("/api/agent/generate-praise")
async def generate_praise(
    request: PraiseInput,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.generate_praise(request)
    if request.round_id:
        round_ = round_store.find_by_id(request.round_id)
        if round_ is not None:
            round_store.record_praise(
                round_.id,
                outcome.content["praise_message"],
                outcome.metadata.model_dump(mode="json"),
            )
    return generation_payload("praise", outcome)


# ==================== WebSocket ====================

@router.websocket("/ws/rounds/{session_id}/{round_number}")
async def round_updates(websocket: WebSocket, session_id: str, round_number: int):
    """
    Notify the client when a round row exists.

    Polls with exponential backoff; a client message of "refresh" asks for an
    immediate check, and "ping" is answered with "pong". Polling stops when
    the client disconnects.
    """
    await websocket.accept()

    async def fetch_round():
        round_ = round_store.find(session_id, round_number)
        return round_payload(round_) if round_ else None

    fetcher = ThrottledFetcher(
        fetch_round,
        min_interval=settings.poll_min_interval,
        debounce_window=settings.poll_debounce_window,
    )
    poller = RetryPoller(
        fetcher.request,
        initial_delay=settings.poll_initial_delay,
        max_delay=settings.poll_max_delay,
        max_attempts=settings.poll_max_attempts,
    )

    async def listen():
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"type": "pong"})
            elif message == "refresh":
                round_ = await fetcher.request()
                if round_ is not None:
                    return round_

    poll_task = poller.start()
    listen_task = asyncio.create_task(listen())
    try:
        done, _ = await asyncio.wait({poll_task, listen_task}, return_when=asyncio.FIRST_COMPLETED)

        if listen_task in done and listen_task.exception() is not None:
            # Client went away
            return

        finished = poll_task if poll_task in done else listen_task
        round_ = finished.result()
        if round_ is not None:
            await websocket.send_json({"type": "round_ready", "round": round_})
        else:
            await websocket.send_json({
                "type": "still_preparing",
                "attempts": poller.attempts,
                "message": "Round is still being prepared",
            })
        await websocket.close()
    except WebSocketDisconnect:
        pass
    finally:
        poller.cancel()
        listen_task.cancel()
