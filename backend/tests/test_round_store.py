"""Tests for idempotent round persistence."""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlmodel import Session, select

from app.db import engine
from app.errors import NotFoundError, SessionCompletedError, ValidationFailedError
from app.models import Round, RoundUpdate, Session as SessionModel
from app.services import round_store
from app.services.round_store import RoundStore


def count_rounds(session_id, round_number):
    with Session(engine) as db:
        statement = select(Round).where(
            Round.session_id == session_id, Round.round_number == round_number,
        )
        return len(db.exec(statement).all())


def complete(round_id, label="angry", pre=4, post=2):
    return round_store.update_round(
        round_id,
        RoundUpdate(labeled_emotion=label, pre_intensity=pre, post_intensity=post),
    )


def reload_session(session_id):
    with Session(engine) as db:
        return db.get(SessionModel, session_id)


class TestCreateRound:
    def test_repeated_create_returns_same_row(self, make_session):
        session = make_session()

        first, created_first = round_store.create_round(session.id, 1, story_id=session.story_ids[0])
        second, created_second = round_store.create_round(session.id, 1, story_id=session.story_ids[0])

        assert created_first and not created_second
        assert first.id == second.id
        assert count_rounds(session.id, 1) == 1

    def test_losing_an_insert_race_returns_the_winner(self, make_session, monkeypatch):
        session = make_session()
        winner, _ = round_store.create_round(session.id, 2)

        real_find = RoundStore._find
        calls = {"count": 0}

        def racing_find(db, session_id, round_number):
            # The first lookup misses, as if the other insert had not committed yet
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return real_find(db, session_id, round_number)

        monkeypatch.setattr(RoundStore, "_find", staticmethod(racing_find))

        loser, created = round_store.create_round(session.id, 2)

        assert not created
        assert loser.id == winner.id
        assert count_rounds(session.id, 2) == 1

    def test_concurrent_creates_produce_one_row(self, make_session):
        session = make_session()
        barrier = threading.Barrier(4)

        def create():
            barrier.wait()
            return round_store.create_round(session.id, 3)

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: create(), range(4)))

        assert len({round_.id for round_, _ in results}) == 1
        assert sum(1 for _, created in results if created) == 1
        assert count_rounds(session.id, 3) == 1

    def test_unknown_session(self):
        with pytest.raises(NotFoundError):
            round_store.create_round("missing", 1)

    @pytest.mark.parametrize("round_number", [0, 6])
    def test_round_number_must_be_in_range(self, make_session, round_number):
        session = make_session()

        with pytest.raises(ValidationFailedError):
            round_store.create_round(session.id, round_number)

    def test_closed_session_still_returns_existing_round(self, make_session):
        session = make_session(total_rounds=1)
        round_, _ = round_store.create_round(session.id, 1, story_id=session.story_ids[0])
        complete(round_.id)

        again, created = round_store.create_round(session.id, 1)

        assert not created
        assert again.id == round_.id

    def test_closed_session_rejects_new_rounds(self, make_session):
        session = make_session(total_rounds=2)
        with Session(engine) as db:
            closed = db.get(SessionModel, session.id)
            closed.completed_at = closed.started_at
            db.add(closed)
            db.commit()

        with pytest.raises(SessionCompletedError):
            round_store.create_round(session.id, 1)


class TestUpdateRound:
    def test_label_sets_correctness_from_story(self, make_session):
        session = make_session()
        # Round 3 of the 8-9 set is the angry story
        round_, _ = round_store.create_round(session.id, 3, story_id=session.story_ids[2])

        updated, just_completed = round_store.update_round(round_.id, RoundUpdate(labeled_emotion="angry"))

        assert updated.is_correct is True
        assert not just_completed
        assert updated.completed_at is None

        updated, _ = round_store.update_round(round_.id, RoundUpdate(labeled_emotion="sad"))
        assert updated.is_correct is False

    def test_generated_story_target_is_used(self, make_session):
        session = make_session(agent_enabled=True)
        round_, _ = round_store.create_round(
            session.id, 1, generated_story={"story_text": "x", "target_emotion": "calm"},
        )

        updated, _ = round_store.update_round(round_.id, RoundUpdate(labeled_emotion="calm"))

        assert updated.is_correct is True

    def test_partial_updates_merge(self, make_session):
        session = make_session()
        round_, _ = round_store.create_round(session.id, 1, story_id=session.story_ids[0])

        round_store.update_round(round_.id, RoundUpdate(pre_intensity=4))
        updated, just_completed = round_store.update_round(round_.id, RoundUpdate(labeled_emotion="happy"))

        assert updated.pre_intensity == 4
        assert updated.labeled_emotion == "happy"
        assert not just_completed

    def test_completion_is_counted_once(self, make_session):
        session = make_session()
        round_, _ = round_store.create_round(session.id, 1, story_id=session.story_ids[0])

        _, first = complete(round_.id)
        _, second = complete(round_.id, post=1)

        assert first and not second
        assert reload_session(session.id).completed_rounds == 1

    def test_last_round_closes_the_session(self, make_session):
        session = make_session()
        for number in range(1, 6):
            round_, _ = round_store.create_round(session.id, number, story_id=session.story_ids[number - 1])
            complete(round_.id)

        closed = reload_session(session.id)
        assert closed.completed_rounds == 5
        assert closed.completed_at is not None

        with pytest.raises(SessionCompletedError):
            round_store.update_round(round_.id, RoundUpdate(post_intensity=1))

    def test_unknown_round(self):
        with pytest.raises(NotFoundError):
            round_store.update_round("missing", RoundUpdate(pre_intensity=2))


class TestStageRecords:
    def test_praise_is_recorded_after_the_session_closes(self, make_session):
        session = make_session(total_rounds=1)
        round_, _ = round_store.create_round(session.id, 1, story_id=session.story_ids[0])
        complete(round_.id)

        updated = round_store.record_praise(round_.id, "Well done, Sam!", {"fallback_used": False})

        assert updated.praise_message == "Well done, Sam!"
        assert updated.generation_metadata == {"praise": {"fallback_used": False}}

    def test_stage_metadata_is_merged(self, make_session):
        session = make_session()
        round_, _ = round_store.create_round(
            session.id, 1, generation_metadata={"story": {"fallback_used": True}},
        )

        updated = round_store.record_stage_metadata(round_.id, "script", {"fallback_used": False})

        assert updated.generation_metadata == {
            "story": {"fallback_used": True},
            "script": {"fallback_used": False},
        }
