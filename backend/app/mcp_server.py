"""MCP Server for the Emotion Coach backend."""
import asyncio
import json
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from app.db import init_db
from app.services import session_service
from app.services.safety import check_crisis_keywords, run_content_safety_check


# Create MCP server
server = Server("emotion-coach")


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="check_content_safety",
            description="Run the child-content safety pipeline on a piece of text and report crisis keyword severity.",
            inputSchema={
                "type": "object",
                "properties": {
                    "text": {
                        "type": "string",
                        "description": "The text to check",
                    },
                    "content_type": {
                        "type": "string",
                        "enum": ["story", "script", "praise"],
                        "description": "Which length limits to apply",
                        "default": "story",
                    },
                },
                "required": ["text"],
            },
        ),
        Tool(
            name="get_session_status",
            description="Check progress of a practice session and its rounds.",
            inputSchema={
                "type": "object",
                "properties": {
                    "session_id": {
                        "type": "string",
                        "description": "The session ID",
                    },
                },
                "required": ["session_id"],
            },
        ),
        Tool(
            name="list_sessions",
            description="List recent practice sessions.",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of sessions to return",
                        "default": 10,
                    },
                    "child_id": {
                        "type": "string",
                        "description": "Only sessions for this child",
                    },
                },
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""

    if name == "check_content_safety":
        return await handle_check_safety(arguments)
    elif name == "get_session_status":
        return await handle_get_status(arguments)
    elif name == "list_sessions":
        return await handle_list_sessions(arguments)
    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]


async def handle_check_safety(arguments: dict) -> list[TextContent]:
    """Handle check_content_safety tool call."""
    text = arguments.get("text", "")
    content_type = arguments.get("content_type", "story")

    if content_type not in ("story", "script", "praise"):
        return [TextContent(type="text", text=f"Error: unsupported content_type {content_type}")]

    result = run_content_safety_check(text, content_type)
    crisis = check_crisis_keywords(text)

    payload = {
        **result.model_dump(exclude_none=True),
        "crisis": crisis.model_dump(),
    }
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


async def handle_get_status(arguments: dict) -> list[TextContent]:
    """Handle get_session_status tool call."""
    session_id = arguments.get("session_id", "")

    if not session_id:
        return [TextContent(type="text", text="Error: session_id is required")]

    init_db()
    session = session_service.get_by_id(session_id)

    if not session:
        return [TextContent(type="text", text=f"Session not found: {session_id}")]

    rounds = session_service.get_rounds(session_id)
    result = {
        "session_id": session.id,
        "child_id": session.child_id,
        "started_at": session.started_at.isoformat(),
        "completed_at": session.completed_at.isoformat() if session.completed_at else None,
        "completed_rounds": session.completed_rounds,
        "total_rounds": session.total_rounds,
        "agent_enabled": session.agent_enabled,
        "analyses_stored": sum(1 for entry in session.cumulative_context or [] if entry),
        "rounds": [
            {
                "round_number": r.round_number,
                "labeled_emotion": r.labeled_emotion,
                "is_correct": r.is_correct,
                "pre_intensity": r.pre_intensity,
                "post_intensity": r.post_intensity,
                "completed": r.is_complete,
            }
            for r in rounds
        ],
    }

    return [TextContent(type="text", text=json.dumps(result, indent=2))]


async def handle_list_sessions(arguments: dict) -> list[TextContent]:
    """Handle list_sessions tool call."""
    limit = arguments.get("limit", 10)
    child_id = arguments.get("child_id")

    init_db()
    sessions = session_service.list_all(limit=limit, child_id=child_id)

    result = {
        "count": len(sessions),
        "sessions": [
            {
                "session_id": s.id,
                "child_id": s.child_id,
                "started_at": s.started_at.isoformat(),
                "completed_rounds": s.completed_rounds,
                "total_rounds": s.total_rounds,
                "completed": s.is_closed,
            }
            for s in sessions
        ],
    }

    return [TextContent(type="text", text=json.dumps(result, indent=2))]


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    asyncio.run(main())
