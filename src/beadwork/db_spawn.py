"""SpawnMixin — instantiate a cooked template subgraph into items.

Implements the :class:`beadwork.subgraph.Spawner` contract on ``BeadDB``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from beadwork.db_base import DBMixinProtocol, _now_iso
from beadwork.deps import Edge
from beadwork.errors import StorageError
from beadwork.subgraph import SpawnResult, TemplateSubgraph

logger = logging.getLogger(__name__)


class SpawnMixin(DBMixinProtocol):
    """Creates one item per template node and every intra-template edge."""

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

    def spawn(self, subgraph: TemplateSubgraph, *, actor: str = "") -> SpawnResult:
        """Create the items and edges of *subgraph* in one transaction."""
        now = _now_iso()
        mapping: dict[str, str] = {}
        created_edges: list[Edge] = []
        try:
            with self.transaction():
                for local_id, node in subgraph.nodes.items():
                    item_id = self._generate_unique_id()
                    self.conn.execute(
                        "INSERT INTO items (id, title, kind, status, priority, origin, formula, "
                        "created_at, updated_at, description) "
                        "VALUES (?, ?, ?, 'open', 2, 'formula', ?, ?, ?, ?)",
                        (item_id, node.title, node.kind, subgraph.name, now, now, node.description),
                    )
                    self._record_event(item_id, "spawned", actor=actor, new_value=f"{subgraph.name}:{local_id}")
                    mapping[local_id] = item_id

                # Endpoints are all fresh ids and the template is acyclic, so
                # these edges cannot close a cycle through stored edges.
                for edge in subgraph.edges:
                    spawned = Edge(mapping[edge.subject], mapping[edge.object], edge.type)
                    self.conn.execute(
                        "INSERT OR IGNORE INTO dependencies (subject_id, object_id, type, created_at) VALUES (?, ?, ?, ?)",
                        (spawned.subject, spawned.object, spawned.type, now),
                    )
                    created_edges.append(spawned)
                self._mark_dirty(mapping.values())
        except sqlite3.Error as exc:
            msg = f"Failed to spawn formula '{subgraph.name}': {exc}"
            raise StorageError(msg) from exc

        result = SpawnResult(root_id=mapping[subgraph.root], mapping=mapping, created_edges=tuple(created_edges))
        logger.info("Spawned formula %s as %s (%d items)", subgraph.name, result.root_id, len(mapping))
        return result
