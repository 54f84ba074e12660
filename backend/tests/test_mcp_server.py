"""Tests for the MCP tool handlers."""
import asyncio
import json

from app.mcp_server import call_tool, list_tools
from app.services import round_store


def call(name, arguments):
    contents = asyncio.run(call_tool(name, arguments))
    return contents[0].text


def test_tools_are_listed():
    tools = asyncio.run(list_tools())

    assert [tool.name for tool in tools] == ["check_content_safety", "get_session_status", "list_sessions"]


def test_check_content_safety_reports_crisis_severity():
    result = json.loads(call("check_content_safety", {"text": "Sometimes I want to die.", "content_type": "praise"}))

    assert result["passed"] is False
    assert result["flags"][0] == "crisis_keywords_detected"
    assert result["crisis"]["severity"] == "high"
    assert result["crisis"]["should_alert"] is True


def test_check_content_safety_passes_clean_text():
    result = json.loads(call("check_content_safety", {"text": "Mia held the red balloon and smiled."}))

    assert result["passed"] is True
    assert result["crisis"]["severity"] == "low"


def test_unsupported_content_type():
    assert call("check_content_safety", {"text": "hello there", "content_type": "poem"}).startswith("Error")


def test_session_status(make_session):
    session = make_session(agent_enabled=False)
    round_store.create_round(session.id, 1, story_id=session.story_ids[0])

    status = json.loads(call("get_session_status", {"session_id": session.id}))

    assert status["total_rounds"] == 5
    assert status["rounds"][0]["round_number"] == 1
    assert status["rounds"][0]["completed"] is False


def test_session_status_unknown():
    assert call("get_session_status", {"session_id": "missing"}) == "Session not found: missing"


def test_list_sessions(make_session):
    make_session()
    make_session()

    result = json.loads(call("list_sessions", {"limit": 5, "child_id": "child-1"}))

    assert result["count"] == 2


def test_unknown_tool():
    assert call("nope", {}) == "Unknown tool: nope"
