"""MCP tools for item CRUD."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from beadwork.mcp_tools.common import _error, _text, _validate_actor, _validate_id


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for item tools."""
    tools = [
        Tool(
            name="create_item",
            description="Create a new item (task, epic or gate)",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Item title"},
                    "kind": {"type": "string", "enum": ["task", "epic", "gate"], "default": "task"},
                    "priority": {"type": "integer", "default": 2, "minimum": 0, "maximum": 4},
                    "parent_id": {"type": "string", "description": "Containing epic ID"},
                    "description": {"type": "string", "default": ""},
                    "deps": {"type": "array", "items": {"type": "string"}, "description": "IDs this item is blocked by"},
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["title"],
            },
        ),
        Tool(
            name="get_item",
            description="Get an item with its blockers, containers, children and readiness",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "Item ID"},
                    "include_events": {"type": "boolean", "default": False},
                },
                "required": ["id"],
            },
        ),
        Tool(
            name="close_item",
            description="Close an item. Items blocked only by it become ready",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "Item ID"},
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["id"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "create_item": _handle_create_item,
        "get_item": _handle_get_item,
        "close_item": _handle_close_item,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_create_item(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    title = arguments.get("title")
    if not isinstance(title, str):
        return _text({"error": "title must be a string", "code": "validation_error"})
    tracker = _get_db()
    try:
        item = tracker.create_item(
            title,
            kind=arguments.get("kind", "task"),
            priority=arguments.get("priority", 2),
            parent_id=arguments.get("parent_id"),
            description=arguments.get("description", ""),
            deps=arguments.get("deps"),
            actor=actor,
        )
    except (KeyError, ValueError) as e:
        return _error(e)
    return _text(item.to_dict())


async def _handle_get_item(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    item_id, id_err = _validate_id(arguments.get("id"), "id")
    if id_err:
        return id_err
    tracker = _get_db()
    try:
        data: dict[str, Any] = dict(tracker.get_item(item_id).to_dict())
    except KeyError as e:
        return _error(e)
    if arguments.get("include_events"):
        data["events"] = tracker.get_item_events(item_id)
    return _text(data)


async def _handle_close_item(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    item_id, id_err = _validate_id(arguments.get("id"), "id")
    if id_err:
        return id_err
    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        item = tracker.close_item(item_id, actor=actor)
    except (KeyError, ValueError) as e:
        return _error(e)
    newly_ready = [i.id for i in tracker.get_ready() if i.id in item.blocks]
    return _text({**item.to_dict(), "newly_ready": newly_ready})
