"""MCP server for beadwork.

Primary interface for agents. Direct SQLite, no daemon.
Exposes beadwork operations as MCP tools; each ``mcp_tools`` module
contributes its tool definitions and handlers via ``register()``.

Usage:
    beadwork-mcp                              # Auto-discover .beadwork/ from cwd
    beadwork-mcp --project /path/to/project   # Explicit project root
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from beadwork.core import BEADWORK_DIR_NAME, DB_FILENAME, BeadDB, find_beadwork_root, read_config
from beadwork.mcp_tools import formulas as formula_tools
from beadwork.mcp_tools import graph as graph_tools
from beadwork.mcp_tools import items as item_tools
from beadwork.mcp_tools.common import _text

server = Server("beadwork")
db: BeadDB | None = None
_beadwork_dir: Path | None = None
_logger: logging.Logger | None = None

_TOOLS: list[Tool] = []
_HANDLERS: dict[str, Callable[..., Any]] = {}
for _module in (item_tools, graph_tools, formula_tools):
    _tools, _handlers = _module.register()
    _TOOLS.extend(_tools)
    _HANDLERS.update(_handlers)


def _get_db() -> BeadDB:
    if db is None:
        msg = "Database not initialized"
        raise RuntimeError(msg)
    return db


def _get_beadwork_dir() -> Path | None:
    return _beadwork_dir


# ---------------------------------------------------------------------------
# Tool definitions and dispatch
# ---------------------------------------------------------------------------


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return list(_TOOLS)


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    tracker = _get_db()
    handler = _HANDLERS.get(name)
    if handler is None:
        return _text({"error": f"Unknown tool: {name}", "code": "unknown_tool"})
    t0 = time.monotonic()

    try:
        result: list[TextContent] = await handler(arguments or {})
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"tool": name, "args_data": arguments}, exc_info=True)
        raise
    else:
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        if _logger:
            _logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
        return result
    finally:
        # Failed mutations roll back inside BeadDB.transaction(); this only
        # catches a connection left mid-transaction by an unexpected error.
        if tracker.conn.in_transaction:
            tracker.conn.rollback()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def _run(project_path: Path | None) -> None:
    global db, _beadwork_dir, _logger

    if project_path:
        beadwork_dir = project_path / BEADWORK_DIR_NAME
        if not beadwork_dir.is_dir():
            print(f"Error: {beadwork_dir} not found. Run 'beadwork init' first.", file=sys.stderr)
            sys.exit(1)
    else:
        try:
            beadwork_dir = find_beadwork_root()
        except FileNotFoundError:
            print(f"Error: No {BEADWORK_DIR_NAME}/ found. Run 'beadwork init' first.", file=sys.stderr)
            sys.exit(1)

    _beadwork_dir = beadwork_dir
    config = read_config(beadwork_dir)
    db = BeadDB(beadwork_dir / DB_FILENAME, prefix=config.get("prefix", "beadwork"))
    db.initialize()

    from beadwork.logging import setup_logging

    _logger = setup_logging(beadwork_dir)
    _logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"project": str(beadwork_dir.parent)}})

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="Beadwork MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .beadwork/ if omitted)")
    args = parser.parse_args()

    asyncio.run(_run(args.project))


if __name__ == "__main__":
    main()
