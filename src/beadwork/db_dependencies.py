"""DependenciesMixin — typed edges, cycle checks, and the graph view.

Extracted from core.py. All methods access ``self.conn``, ``self.get_item()``,
etc. via Python's MRO when composed into ``BeadDB``. The read helpers at the
bottom make ``BeadDB`` satisfy :class:`beadwork.readiness.GraphView`.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import deque
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from beadwork.db_base import DBMixinProtocol, _now_iso
from beadwork.deps import (
    BLOCKING_DEP_TYPES,
    BLOCKS,
    CONTAINMENT_DEP_TYPES,
    PARENT_CHILD,
    Edge,
    validate_dep_type,
)
from beadwork.errors import IntegrityError, StorageError
from beadwork.types.core import DependencyRecord

if TYPE_CHECKING:
    from beadwork.core import Item

logger = logging.getLogger(__name__)

_BLOCKING_PH = ",".join("?" * len(BLOCKING_DEP_TYPES))
_BLOCKING_TYPES = sorted(BLOCKING_DEP_TYPES)


def _cycle_family(dep_type: str) -> frozenset[str]:
    """Edge types that share a cycle check with *dep_type* (empty if none)."""
    if dep_type in BLOCKING_DEP_TYPES:
        return BLOCKING_DEP_TYPES
    if dep_type in CONTAINMENT_DEP_TYPES:
        return CONTAINMENT_DEP_TYPES
    return frozenset()


class DependenciesMixin(DBMixinProtocol):
    """Dependency CRUD plus ready/blocked queries.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``BeadDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From EventsMixin
        def _record_event(
            self,
            item_id: str,
            event_type: str,
            *,
            actor: str = "",
            old_value: str | None = None,
            new_value: str | None = None,
        ) -> None: ...

        # From BeadDB
        def _build_items_batch(self, item_ids: list[str]) -> list[Item]: ...

    # -- Dependencies --------------------------------------------------------

    def add_dependency(self, subject_id: str, object_id: str, *, dep_type: str = BLOCKS, actor: str = "") -> bool:
        """Add ``subject -> object``. Returns False when the edge already exists."""
        created = self.add_dependencies([Edge(subject_id, object_id, dep_type)], actor=actor)
        return bool(created)

    def add_dependencies(self, edges: Sequence[Edge], *, actor: str = "") -> list[Edge]:
        """Insert *edges* in one transaction; return those that were new.

        Existing edges, and repeats within *edges*, are skipped without error.
        Every endpoint must exist and no blocking or containment cycle may be
        closed, counting earlier edges of the same batch. Nothing is written
        unless everything is valid.
        """
        batch = list(dict.fromkeys(edges))
        now = _now_iso()
        created: list[Edge] = []
        try:
            # Checks and inserts share one transaction and the write lock.
            with self.transaction():
                self._validate_batch(batch)
                for edge in batch:
                    cursor = self.conn.execute(
                        "INSERT OR IGNORE INTO dependencies (subject_id, object_id, type, created_at) VALUES (?, ?, ?, ?)",
                        (edge.subject, edge.object, edge.type, now),
                    )
                    if cursor.rowcount == 0:
                        continue  # Already exists: no-op, no event
                    self._record_event(edge.subject, "dependency_added", actor=actor, new_value=f"{edge.type}:{edge.object}")
                    created.append(edge)
                self._mark_dirty(e.subject for e in created)
        except sqlite3.Error as exc:
            msg = f"Failed to add {len(batch)} dependencies: {exc}"
            raise StorageError(msg) from exc
        return created

    def _validate_batch(self, batch: Sequence[Edge]) -> None:
        ids = {e.subject for e in batch} | {e.object for e in batch}
        if ids:
            ph = ",".join("?" * len(ids))
            found = {r["id"] for r in self.conn.execute(f"SELECT id FROM items WHERE id IN ({ph})", list(ids)).fetchall()}
            missing = sorted(ids - found)
            if missing:
                msg = f"Item not found: {', '.join(missing)}"
                raise KeyError(msg)
        for index, edge in enumerate(batch):
            validate_dep_type(edge.type)
            if edge.subject == edge.object:
                msg = f"Cannot add self-dependency: {edge.subject}"
                raise ValueError(msg)
            cycle = self.find_cycle(edge.subject, edge.object, dep_type=edge.type, pending=batch[:index])
            if cycle:
                raise IntegrityError(f"Dependency {edge.subject} -> {edge.object} would create a cycle", cycle)

    def remove_dependency(self, subject_id: str, object_id: str, *, dep_type: str | None = None, actor: str = "") -> bool:
        """Remove ``subject -> object`` edges (all types unless *dep_type* is given)."""
        sql = "DELETE FROM dependencies WHERE subject_id = ? AND object_id = ?"
        params: list[str] = [subject_id, object_id]
        if dep_type is not None:
            validate_dep_type(dep_type)
            sql += " AND type = ?"
            params.append(dep_type)
        with self.transaction():
            cursor = self.conn.execute(sql, params)
            if cursor.rowcount == 0:
                return False  # Nothing to remove
            self._record_event(subject_id, "dependency_removed", actor=actor, old_value=object_id)
            self._mark_dirty([subject_id])
        return True

    def has_dependency(self, edge: Edge) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM dependencies WHERE subject_id = ? AND object_id = ? AND type = ?",
            (edge.subject, edge.object, edge.type),
        ).fetchone()
        return row is not None

    def get_all_dependencies(self) -> list[DependencyRecord]:
        rows = self.conn.execute("SELECT subject_id, object_id, type FROM dependencies ORDER BY created_at, subject_id").fetchall()
        return [{"from": r["subject_id"], "to": r["object_id"], "type": r["type"]} for r in rows]

    def get_dependencies(self, item_id: str) -> list[Edge]:
        """Every edge touching *item_id*, in either direction."""
        self.get_item(item_id)  # raises KeyError if not found
        rows = self.conn.execute(
            "SELECT subject_id, object_id, type FROM dependencies WHERE subject_id = ? OR object_id = ? ORDER BY created_at",
            (item_id, item_id),
        ).fetchall()
        return [Edge(r["subject_id"], r["object_id"], r["type"]) for r in rows]

    def find_cycle(
        self,
        subject: str,
        object: str,
        *,
        dep_type: str = BLOCKS,
        pending: Iterable[Edge] = (),
    ) -> list[str] | None:
        """Return the cycle that ``subject -> object`` would close, or None.

        BFS from *object* along existing (and *pending*) edges of the same
        family. Blocking and containment edges are checked separately.
        """
        family = _cycle_family(dep_type)
        if not family:
            return None
        if subject == object:
            return [subject, object]
        extra: dict[str, list[str]] = {}
        for edge in pending:
            if edge.type in family:
                extra.setdefault(edge.subject, []).append(edge.object)
        ph = ",".join("?" * len(family))
        types = sorted(family)

        pred: dict[str, str | None] = {object: None}
        queue = deque([object])
        while queue:
            current = queue.popleft()
            if current == subject:
                path: list[str] = []
                node: str | None = current
                while node is not None:
                    path.append(node)
                    node = pred[node]
                path.reverse()
                return [subject, *path]
            rows = self.conn.execute(
                f"SELECT object_id FROM dependencies WHERE subject_id = ? AND type IN ({ph})",
                [current, *types],
            ).fetchall()
            for nxt in [r["object_id"] for r in rows] + extra.get(current, []):
                if nxt not in pred:
                    pred[nxt] = current
                    queue.append(nxt)
        return None

    # -- GraphView -----------------------------------------------------------

    def has_item(self, item_id: str) -> bool:
        return self.conn.execute("SELECT 1 FROM items WHERE id = ?", (item_id,)).fetchone() is not None

    def is_closed(self, item_id: str) -> bool:
        row = self.conn.execute("SELECT status FROM items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            logger.warning("is_closed: dangling reference %s treated as closed", item_id)
            return True
        return bool(row["status"] == "closed")

    def blocking_objects(self, item_id: str) -> list[str]:
        rows = self.conn.execute(
            f"SELECT object_id FROM dependencies WHERE subject_id = ? AND type IN ({_BLOCKING_PH}) ORDER BY object_id",
            [item_id, *_BLOCKING_TYPES],
        ).fetchall()
        return [r["object_id"] for r in rows]

    def blocking_subjects(self, item_id: str) -> list[str]:
        rows = self.conn.execute(
            f"SELECT subject_id FROM dependencies WHERE object_id = ? AND type IN ({_BLOCKING_PH}) ORDER BY subject_id",
            [item_id, *_BLOCKING_TYPES],
        ).fetchall()
        return [r["subject_id"] for r in rows]

    def containers_of(self, item_id: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT object_id FROM dependencies WHERE subject_id = ? AND type = ? ORDER BY object_id",
            (item_id, PARENT_CHILD),
        ).fetchall()
        return [r["object_id"] for r in rows]

    def contained_items(self, item_id: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT subject_id FROM dependencies WHERE object_id = ? AND type = ? ORDER BY subject_id",
            (item_id, PARENT_CHILD),
        ).fetchall()
        return [r["subject_id"] for r in rows]

    # -- Ready / Blocked -----------------------------------------------------

    def is_blocked(self, item_id: str) -> bool:
        self.get_item(item_id)  # raises KeyError if not found
        return self.readiness.is_blocked(item_id)

    def _open_actionable_ids(self) -> list[str]:
        rows = self.conn.execute(
            "SELECT id FROM items WHERE status = 'open' AND kind != 'epic' ORDER BY priority, created_at, id",
        ).fetchall()
        return [r["id"] for r in rows]

    def get_ready(self) -> list[Item]:
        """Open, non-container items that are not blocked."""
        ids = [i for i in self._open_actionable_ids() if not self.readiness.is_blocked(i)]
        return self._build_items_batch(ids)

    def get_blocked(self) -> list[Item]:
        """Open, non-container items blocked directly or through a container."""
        ids = [i for i in self._open_actionable_ids() if self.readiness.is_blocked(i)]
        return self._build_items_batch(ids)
