"""Tests for the per-session observer context."""
import pytest

from app.errors import NotFoundError
from app.services import observer_context

from fakes import analysis_reply


def test_out_of_order_writes_fill_their_own_slots(make_session):
    session = make_session(agent_enabled=True)
    third = analysis_reply("round-3")
    first = analysis_reply("round-1")

    assert observer_context.write(session.id, 3, third) == [None, None, third]
    assert observer_context.write(session.id, 1, first) == [first, None, third]


def test_read_prior_returns_previous_round_analysis(make_session):
    session = make_session(agent_enabled=True)
    first = analysis_reply("round-1")
    third = analysis_reply("round-3")
    observer_context.write(session.id, 1, first)
    observer_context.write(session.id, 3, third)

    assert observer_context.read_prior(session.id, 1) is None
    assert observer_context.read_prior(session.id, 2) == first
    assert observer_context.read_prior(session.id, 3) is None
    assert observer_context.read_prior(session.id, 4) == third
    assert observer_context.read_prior(session.id, 5) is None


def test_rewrite_replaces_slot(make_session):
    session = make_session(agent_enabled=True)
    observer_context.write(session.id, 2, analysis_reply("old"))

    context = observer_context.write(session.id, 2, analysis_reply("new"))

    assert context[1]["round_id"] == "new"
    assert len(context) == 2


def test_unknown_session():
    with pytest.raises(NotFoundError):
        observer_context.write("missing", 1, analysis_reply())

    assert observer_context.read_prior("missing", 2) is None


def test_round_number_must_be_positive(make_session):
    session = make_session()

    with pytest.raises(ValueError):
        observer_context.write(session.id, 0, analysis_reply())
