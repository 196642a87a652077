"""Shared utilities, types, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from beadwork.core import Item
    from beadwork.locking import ItemLocks
    from beadwork.readiness import ReadinessEngine


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_item(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by BeadDB at composition time.
    """

    db_path: Path
    prefix: str
    _conn: sqlite3.Connection | None
    _locks: ItemLocks

    @property
    def conn(self) -> sqlite3.Connection: ...

    @property
    def readiness(self) -> ReadinessEngine: ...

    def get_item(self, item_id: str) -> Item: ...

    def transaction(self) -> AbstractContextManager[None]: ...

    def _mark_dirty(self, item_ids: Iterable[str]) -> None: ...

    def _generate_unique_id(self) -> str: ...
