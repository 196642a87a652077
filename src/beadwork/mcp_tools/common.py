"""Pure helpers shared across MCP tool modules.

This module has NO dependency on ``mcp_server`` module globals, so it can
be imported freely without triggering circular-import issues.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.types import TextContent

from beadwork.errors import error_code, error_message
from beadwork.validation import sanitize_actor, validate_item_id

logger = logging.getLogger(__name__)


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _error(exc: BaseException) -> list[TextContent]:
    return _text({"error": error_message(exc), "code": error_code(exc)})


def _validate_actor(value: Any) -> tuple[str, list[TextContent] | None]:
    """Sanitize actor, returning (cleaned, None) or ("", error_response)."""
    cleaned, err = sanitize_actor(value)
    if err:
        return ("", _text({"error": err, "code": "validation_error"}))
    return (cleaned, None)


def _validate_id(value: Any, name: str) -> tuple[str, list[TextContent] | None]:
    cleaned, err = validate_item_id(value)
    if err:
        return ("", _text({"error": f"{name}: {err}", "code": "validation_error"}))
    return (cleaned, None)
