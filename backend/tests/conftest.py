"""Shared fixtures. The database URL is set before the app is imported."""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="emotion-coach-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest
from sqlmodel import Session, SQLModel

import app.models  # noqa: F401
from app.db import engine
from app.db.seed import STORIES, seed_catalog
from app.models import Child, Session as SessionModel
from app.services.orchestrator import GenerationOrchestrator

from fakes import FakeClient


@pytest.fixture(autouse=True)
def database():
    """Fresh schema and seeded catalogs for every test."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    seed_catalog(engine)
    yield engine


@pytest.fixture
def child():
    record = Child(id="child-1", nickname="Sam", age_band="8-9")
    with Session(engine) as db:
        db.add(record)
        db.commit()
        db.refresh(record)
    return record


@pytest.fixture
def make_session(child):
    """Insert a session for ``child`` with the 8-9 stories assigned in order."""
    story_ids = [story[0] for story in STORIES if story[4] == "8-9"][:5]

    def _make(agent_enabled: bool = False, total_rounds: int = 5, child_id: str | None = None):
        record = SessionModel(
            child_id=child_id or child.id,
            story_ids=story_ids[:total_rounds],
            total_rounds=total_rounds,
            agent_enabled=agent_enabled,
        )
        with Session(engine) as db:
            db.add(record)
            db.commit()
            db.refresh(record)
        return record

    return _make


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def orchestrator(fake_client):
    return GenerationOrchestrator(client=fake_client)
