"""Tests for timeout-bounded generation with fallbacks."""
import asyncio
import time

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.agents.llm import LLMClient, extract_json
from app.agents.prompts import FALLBACK_STORY
from app.config import settings
from app.db import engine
from app.errors import NotFoundError
from app.models import (
    Child,
    ContentKind,
    EmotionLabel,
    ObserverInput,
    PraiseInput,
    ScriptInput,
    StoryInput,
)
from app.services import audit_log, background
from app.services.orchestrator import GenerationOrchestrator
from app.services.session_service import SessionService

from fakes import PRAISE_REPLY, SCRIPT_REPLY, STORY_REPLY, FakeClient


def run(coro):
    """Run a generation and wait for its audit writes."""
    async def _run():
        result = await coro
        await background.drain()
        return result
    return asyncio.run(_run())


def praise_input(**overrides):
    data = {
        "child_nickname": "Sam",
        "labeled_emotion": "angry",
        "is_correct": True,
        "pre_intensity": 4,
        "post_intensity": 2,
        "round_number": 3,
    }
    data.update(overrides)
    return PraiseInput(**data)


def observer_input(**overrides):
    data = {
        "round_id": "round-1",
        "round_number": 1,
        "story_text": STORY_REPLY["story_text"],
        "story_theme": "small disappointments",
        "target_emotion": "sad",
        "labeled_emotion": "sad",
        "pre_intensity": 4,
        "post_intensity": 2,
    }
    data.update(overrides)
    return ObserverInput(**data)


class TestStory:
    def test_generated_story_passes_through(self, child, orchestrator, fake_client):
        outcome = run(orchestrator.generate_story(StoryInput(child_id=child.id, round_number=1)))

        assert not outcome.used_fallback
        assert outcome.content["story_text"] == STORY_REPLY["story_text"]
        assert outcome.safety_result.flags[-1] == "story_validation_passed"
        assert outcome.metadata.agent_type == "action_story"
        assert outcome.metadata.model_version == "fake-story"
        assert outcome.metadata.tokens_used == 42

        kind, payload = fake_client.calls[0]
        assert kind == "story"
        assert payload["child_profile"]["age_band"] == "8-9"
        assert payload["example_stories_for_reference"]

    def test_unknown_child_is_not_found(self, orchestrator):
        with pytest.raises(NotFoundError):
            run(orchestrator.generate_story(StoryInput(child_id="missing", round_number=1)))

    def test_missing_age_band_serves_static_story_without_calling_provider(self, orchestrator, fake_client):
        with Session(engine) as db:
            db.add(Child(id="no-band", nickname="Ari"))
            db.commit()

        outcome = run(orchestrator.generate_story(StoryInput(child_id="no-band", round_number=1)))

        assert outcome.used_fallback
        assert outcome.content == FALLBACK_STORY
        assert outcome.safety_result.flags == ["age_band_unavailable"]
        assert outcome.metadata.model_version == "static"
        assert fake_client.calls == []

    def test_unsafe_story_falls_back_to_catalog(self, child):
        unsafe = {**STORY_REPLY, "story_text": "A scary monster hid under the bed. Nobody slept."}
        orchestrator = GenerationOrchestrator(client=FakeClient(replies={"story": unsafe}))

        outcome = run(orchestrator.generate_story(StoryInput(
            child_id=child.id, round_number=2, recommended_emotion=EmotionLabel.SAD,
        )))

        assert outcome.used_fallback
        assert outcome.content["theme"] == "Moving Day"
        assert outcome.content["target_emotion"] == "sad"
        assert outcome.safety_result.flags[0] == "inappropriate_content"


class TestScript:
    def test_angry_round_three_script_timeout_serves_catalog_script(self, child):
        client = FakeClient(delays={"script": 1.0})
        orchestrator = GenerationOrchestrator(client=client, deadlines={ContentKind.SCRIPT: 0.05})

        started = time.monotonic()
        outcome = run(orchestrator.generate_script(ScriptInput(
            child_id=child.id, round_number=3, labeled_emotion="angry", pre_intensity=4,
        )))
        elapsed = time.monotonic() - started

        assert elapsed < 0.05 + 0.5
        assert outcome.used_fallback
        assert outcome.safety_result.flags == ["timeout_error"]
        assert outcome.content["primary_script"]["name"] == "Bubble Breathing"
        assert client.cancelled == ["script"]

        rows = audit_log.list_recent(agent_type="action_script")
        assert len(rows) == 1
        assert rows[0].fallback_used
        assert rows[0].safety_flags == ["timeout_error"]

    def test_adapted_script_passes_through(self, child, orchestrator):
        outcome = run(orchestrator.generate_script(ScriptInput(
            child_id=child.id, round_number=1, labeled_emotion="sad", pre_intensity=3,
        )))

        assert not outcome.used_fallback
        assert outcome.content["primary_script"]["name"] == SCRIPT_REPLY["primary_script"]["name"]

    def test_child_lookup_failure_serves_catalog_script(self, orchestrator, fake_client, monkeypatch):
        def unavailable(child_id):
            raise SQLAlchemyError("database unavailable")

        monkeypatch.setattr(SessionService, "get_child", staticmethod(unavailable))

        outcome = run(orchestrator.generate_script(ScriptInput(
            child_id="child-1", round_number=3, labeled_emotion="angry", pre_intensity=4,
        )))

        assert outcome.used_fallback
        assert outcome.safety_result.flags == ["child_lookup_failed"]
        assert outcome.content["primary_script"]["name"] == "Bubble Breathing"
        assert outcome.metadata.model_version == "static"
        assert fake_client.calls == []

        rows = audit_log.list_recent(agent_type="action_script")
        assert rows[0].safety_flags == ["child_lookup_failed"]

    def test_unknown_child_is_not_found(self, orchestrator):
        with pytest.raises(NotFoundError):
            run(orchestrator.generate_script(ScriptInput(
                child_id="missing", round_number=1, labeled_emotion="sad", pre_intensity=3,
            )))


class TestPraise:
    def test_toxic_praise_is_replaced(self):
        toxic = {**PRAISE_REPLY, "praise_message": "You are worthless and should be ashamed"}
        orchestrator = GenerationOrchestrator(client=FakeClient(replies={"praise": toxic}))

        outcome = run(orchestrator.generate_praise(praise_input()))

        assert outcome.used_fallback
        assert "Sam" in outcome.content["praise_message"]
        assert "worthless" not in outcome.content["praise_message"]
        assert outcome.safety_result.flags[0] == "toxicity_detected"
        assert outcome.safety_result.toxicity_score == pytest.approx(0.4)

    def test_provider_error_is_flagged(self):
        orchestrator = GenerationOrchestrator(
            client=FakeClient(errors={"praise": RuntimeError("rate limited")})
        )

        outcome = run(orchestrator.generate_praise(praise_input()))

        assert outcome.used_fallback
        assert outcome.safety_result.flags == ["error_occurred"]
        assert outcome.metadata.error_message == "rate limited"

    def test_schema_mismatch_is_flagged(self):
        orchestrator = GenerationOrchestrator(client=FakeClient(replies={"praise": {"message": "hi"}}))

        outcome = run(orchestrator.generate_praise(praise_input()))

        assert outcome.used_fallback
        assert outcome.safety_result.flags == ["error_occurred"]

    def test_fallback_rate_is_tracked(self):
        good = GenerationOrchestrator(client=FakeClient())
        bad = GenerationOrchestrator(client=FakeClient(errors={"praise": RuntimeError("down")}))

        run(good.generate_praise(praise_input()))
        run(bad.generate_praise(praise_input()))

        assert audit_log.fallback_rate("action_praise") == pytest.approx(0.5)
        assert audit_log.fallback_rate("observer") is None


class TestObserve:
    def test_analysis_is_schema_checked(self, orchestrator):
        outcome = run(orchestrator.observe(observer_input()))

        assert not outcome.used_fallback
        assert outcome.safety_result.flags == ["schema_validated"]
        assert outcome.content["regulation_effectiveness"] == "high"

    def test_timeout_serves_rule_based_analysis(self):
        orchestrator = GenerationOrchestrator(
            client=FakeClient(delays={"analysis": 1.0}),
            deadlines={ContentKind.ANALYSIS: 0.05},
        )

        outcome = run(orchestrator.observe(observer_input(pre_intensity=5, post_intensity=4)))

        assert outcome.used_fallback
        assert outcome.content["intensity_delta"] == -1
        assert outcome.content["regulation_effectiveness"] == "medium"
        assert outcome.content["confidence_score"] == 0.0
        assert outcome.safety_result.flags == ["timeout_error"]


class TestLLMClient:
    def test_parses_fenced_json_reply(self):
        reply = '```json\n{"praise_message": "Nice breathing!", "highlights": []}\n```'
        client = LLMClient(chat_factory=lambda kind: FakeListChatModel(responses=[reply]))

        content, model, tokens = asyncio.run(client.generate_json("praise", {"round_number": 1}))

        assert content == {"praise_message": "Nice breathing!", "highlights": []}
        assert model == settings.praise_model
        assert tokens is None

    def test_non_object_reply_is_rejected(self):
        with pytest.raises(ValueError):
            extract_json("[1, 2, 3]")
