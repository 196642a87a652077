"""MCP tools for formulas: listing, cooking, bonding and dry runs."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from beadwork.bonding import VALID_BOND_POLICIES
from beadwork.core import FORMULAS_DIR_NAME, read_config
from beadwork.deps import BLOCKING_DEP_TYPES, BLOCKS
from beadwork.errors import BeadworkError
from beadwork.formulas import Formula, cook, find_formula, list_formulas
from beadwork.mcp_tools.common import _error, _text, _validate_actor, _validate_id

_BOND_PROPERTIES: dict[str, Any] = {
    "head_id": {"type": "string", "description": "Pre-existing item the formula attaches to"},
    "formula": {"type": "string", "description": "Formula name (file stem under .beadwork/formulas/)"},
    "policy": {
        "type": "string",
        "enum": sorted(VALID_BOND_POLICIES),
        "description": "default: spawned root blocked by head. require: head blocked by the spawned boundary steps",
    },
    "type": {
        "type": "string",
        "enum": sorted(BLOCKING_DEP_TYPES),
        "description": "Attachment edge type (default policy only; ignored with a warning under require)",
    },
}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for formula tools."""
    tools = [
        Tool(
            name="list_formulas",
            description="List formulas defined in .beadwork/formulas/",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="cook_formula",
            description="Cook a formula into its template subgraph (nodes and edges) without spawning it",
            inputSchema={
                "type": "object",
                "properties": {"formula": _BOND_PROPERTIES["formula"]},
                "required": ["formula"],
            },
        ),
        Tool(
            name="bond",
            description="Spawn a formula and bond it to a head item in one atomic operation",
            inputSchema={
                "type": "object",
                "properties": {
                    **_BOND_PROPERTIES,
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["head_id", "formula"],
            },
        ),
        Tool(
            name="bond_items",
            description="Bond two existing items. Under require the formula-spawned side is bonded to the other item",
            inputSchema={
                "type": "object",
                "properties": {
                    "head_id": _BOND_PROPERTIES["head_id"],
                    "other_id": {"type": "string", "description": "Item bonded to the head (a spawned root under require)"},
                    "policy": _BOND_PROPERTIES["policy"],
                    "type": _BOND_PROPERTIES["type"],
                    "actor": {"type": "string", "description": "Agent/user identity for audit trail"},
                },
                "required": ["head_id", "other_id"],
            },
        ),
        Tool(
            name="bond_dry_run",
            description="Show the edges a bond would create, in formula-local ids, without writing anything",
            inputSchema={
                "type": "object",
                "properties": _BOND_PROPERTIES,
                "required": ["head_id", "formula"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "list_formulas": _handle_list_formulas,
        "cook_formula": _handle_cook_formula,
        "bond": _handle_bond,
        "bond_items": _handle_bond_items,
        "bond_dry_run": _handle_bond_dry_run,
    }

    return tools, handlers


def _resolve_formula(name: Any) -> Formula | list[TextContent]:
    """The named formula, or the error payload to return instead."""
    from beadwork.mcp_server import _get_beadwork_dir

    beadwork_dir = _get_beadwork_dir()
    if beadwork_dir is None:
        return _text({"error": "Project directory not initialized", "code": "not_initialized"})
    if not isinstance(name, str):
        return _text({"error": "formula must be a string", "code": "validation_error"})
    formula = find_formula(beadwork_dir / FORMULAS_DIR_NAME, name)
    if formula is None:
        return _text({"error": f"Formula not found: {name}", "code": "not_found"})
    return formula


def _bond_options(arguments: dict[str, Any]) -> dict[str, Any]:
    from beadwork.mcp_server import _get_beadwork_dir

    policy = arguments.get("policy")
    if policy is None:
        beadwork_dir = _get_beadwork_dir()
        policy = read_config(beadwork_dir).get("default_policy", "default") if beadwork_dir else "default"
    attach_type = arguments.get("type")
    return {
        "policy": policy,
        "explicit_type_set": attach_type is not None,
        "attach_type": attach_type or BLOCKS,
    }


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_list_formulas(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_beadwork_dir

    beadwork_dir = _get_beadwork_dir()
    if beadwork_dir is None:
        return _text([])
    return _text([f.to_dict() for f in list_formulas(beadwork_dir / FORMULAS_DIR_NAME)])


async def _handle_cook_formula(arguments: dict[str, Any]) -> list[TextContent]:
    formula = _resolve_formula(arguments.get("formula"))
    if not isinstance(formula, Formula):
        return formula
    try:
        subgraph = cook(formula)
    except (BeadworkError, ValueError) as e:
        return _error(e)
    return _text(
        {
            "name": subgraph.name,
            "root": subgraph.root,
            "nodes": [{"id": n.local_id, "title": n.title, "kind": n.kind} for n in subgraph.nodes.values()],
            "edges": [e.to_dict() for e in subgraph.edges],
        }
    )


async def _handle_bond(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    head_id, err = _validate_id(arguments.get("head_id"), "head_id")
    if err:
        return err
    formula = _resolve_formula(arguments.get("formula"))
    if not isinstance(formula, Formula):
        return formula
    tracker = _get_db()
    try:
        result = tracker.bond_formula(head_id, cook(formula), actor=actor, **_bond_options(arguments))
    except (BeadworkError, KeyError, ValueError) as e:
        return _error(e)
    return _text(result.to_dict())


async def _handle_bond_dry_run(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    head_id, err = _validate_id(arguments.get("head_id"), "head_id")
    if err:
        return err
    formula = _resolve_formula(arguments.get("formula"))
    if not isinstance(formula, Formula):
        return formula
    tracker = _get_db()
    try:
        projection = tracker.bond_dry_run(head_id, cook(formula), **_bond_options(arguments))
    except (BeadworkError, KeyError, ValueError) as e:
        return _error(e)
    return _text(projection.to_dict())


async def _handle_bond_items(arguments: dict[str, Any]) -> list[TextContent]:
    from beadwork.mcp_server import _get_db

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    head_id, err = _validate_id(arguments.get("head_id"), "head_id")
    if err:
        return err
    other_id, err = _validate_id(arguments.get("other_id"), "other_id")
    if err:
        return err
    tracker = _get_db()
    try:
        result = tracker.bond_items(head_id, other_id, actor=actor, **_bond_options(arguments))
    except (BeadworkError, KeyError, ValueError) as e:
        return _error(e)
    return _text(result.to_dict())
