"""Shared validation functions for all entry points.

Pure functions — no MCP, FastAPI, or Click dependencies. Each returns
``(cleaned_value, None)`` on success or ``("", error_message)`` on failure
so callers can map the message onto their own error shape.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

from beadwork.bonding import VALID_BOND_POLICIES

_MAX_ACTOR_LENGTH = 128
_MAX_ID_LENGTH = 64
_ITEM_ID_RE = re.compile(r"^[\w.-]+$")


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Validate and clean an actor name.

    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "actor must be a string")
    # Reject "\nbad" rather than silently absorbing the newline via strip().
    for ch in value:
        if unicodedata.category(ch).startswith("C"):  # Cc (control) and Cf (format)
            return ("", f"actor must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "actor must not be empty")
    if len(cleaned) > _MAX_ACTOR_LENGTH:
        return ("", f"actor must be at most {_MAX_ACTOR_LENGTH} characters")
    return (cleaned, None)


def validate_item_id(value: Any) -> tuple[str, str | None]:
    if not isinstance(value, str):
        return ("", "item id must be a string")
    cleaned = value.strip()
    if not cleaned:
        return ("", "item id must not be empty")
    if len(cleaned) > _MAX_ID_LENGTH or not _ITEM_ID_RE.match(cleaned):
        return ("", f"invalid item id: {cleaned!r}")
    return (cleaned, None)


def validate_policy(value: Any) -> tuple[str, str | None]:
    if not isinstance(value, str) or value not in VALID_BOND_POLICIES:
        return ("", f"policy must be one of: {', '.join(sorted(VALID_BOND_POLICIES))}")
    return (value, None)
