"""EventsMixin — audit trail of item and dependency changes."""

from __future__ import annotations

from typing import cast

from beadwork.db_base import DBMixinProtocol, _now_iso
from beadwork.types.core import EventRecord


class EventsMixin(DBMixinProtocol):
    """Event recording and lookup.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``BeadDB`` at composition time via MRO.
    """

    def _record_event(
        self,
        item_id: str,
        event_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> None:
        self.conn.execute(
            "INSERT INTO events (item_id, event_type, actor, old_value, new_value, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (item_id, event_type, actor, old_value, new_value, _now_iso()),
        )

    def get_item_events(self, item_id: str, *, limit: int = 50) -> list[EventRecord]:
        """Get events for a specific item, newest first."""
        self.get_item(item_id)  # raises KeyError if not found
        rows = self.conn.execute(
            "SELECT * FROM events WHERE item_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (item_id, limit),
        ).fetchall()
        return cast(list[EventRecord], [dict(r) for r in rows])
