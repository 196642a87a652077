"""MCP tools for dependencies and ready/blocked queries."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from beadwork.deps import ALL_DEP_TYPES, BLOCKS
from beadwork.errors import BeadworkError
from beadwork.mcp_tools.common import _error, _text, _validate_actor, _validate_id


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for graph tools."""
    tools = [
        Tool(
            name="add_dependency",
            description="Add a typed edge: subject depends on object (for blocking types, object blocks subject)",
            inputSchema={
                "type": "object",
                "properties": {
                    "subject_id": {"type": "string", "description": "Item that depends (is blocked / is the child)"},
                    "object_id": {"type": "string", "description": "Item depended on (blocker / container)"},
                    "type": {"type": "string", "enum": sorted(ALL_DEP_TYPES), "default": BLOCKS},
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["subject_id", "object_id"],
            },
        ),
        Tool(
            name="get_ready",
            description="Get all open, non-container items that are not blocked, sorted by priority",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_blocked",
            description="Get all blocked items with their open blockers and blocked containers",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "add_dependency": _handle_add_dependency,
        "get_ready": _handle_get_ready,
        "get_blocked": _handle_get_blocked,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_add_dependency(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    subject_id, err = _validate_id(arguments.get("subject_id"), "subject_id")
    if err:
        return err
    object_id, err = _validate_id(arguments.get("object_id"), "object_id")
    if err:
        return err
    dep_type = arguments.get("type", BLOCKS)
    tracker = _get_db()
    try:
        added = tracker.add_dependency(subject_id, object_id, dep_type=dep_type, actor=actor)
    except (BeadworkError, KeyError, ValueError) as e:
        return _error(e)
    status = "added" if added else "already_exists"
    return _text({"status": status, "from": subject_id, "to": object_id, "type": dep_type})


async def _handle_get_ready(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    tracker = _get_db()
    return _text([i.to_dict() for i in tracker.get_ready()])


async def _handle_get_blocked(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    tracker = _get_db()
    result = []
    for item in tracker.get_blocked():
        reasons = tracker.readiness.blocked_reasons(item.id)
        result.append(
            {
                "id": item.id,
                "title": item.title,
                "priority": item.priority,
                "kind": item.kind,
                "open_blockers": reasons.open_blockers,
                "blocked_containers": reasons.blocked_containers,
            }
        )
    return _text(result)
