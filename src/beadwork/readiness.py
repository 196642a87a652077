"""Blocked/ready propagation over blocking and containment edges.

An item is blocked when either

(a) one of its blocking-kind edges points at an object that is not closed, or
(b) a container it belongs to, transitively through ``parent-child`` edges,
    is itself blocked.

Propagation through containment is downward only: a blocked child never
marks its container blocked. Results are memoized per item; the component
that commits a structural change calls :meth:`ReadinessEngine.invalidate`
with the items it touched, and the engine drops every cached state that
could depend on them.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from beadwork.errors import IntegrityError

logger = logging.getLogger(__name__)


class GraphView(Protocol):
    """Read-only slice of the item graph the engine needs."""

    def is_closed(self, item_id: str) -> bool: ...

    def blocking_objects(self, item_id: str) -> list[str]:
        """Objects of blocking-kind edges whose subject is *item_id*."""
        ...

    def blocking_subjects(self, item_id: str) -> list[str]:
        """Subjects of blocking-kind edges whose object is *item_id*."""
        ...

    def containers_of(self, item_id: str) -> list[str]:
        """Direct containers of *item_id* (objects of its parent-child edges)."""
        ...

    def contained_items(self, item_id: str) -> list[str]:
        """Direct children of *item_id* (subjects of parent-child edges to it)."""
        ...


@dataclass
class BlockedReasons:
    item_id: str
    open_blockers: list[str] = field(default_factory=list)
    blocked_containers: list[str] = field(default_factory=list)

    @property
    def is_blocked(self) -> bool:
        return bool(self.open_blockers or self.blocked_containers)

    def to_dict(self) -> dict[str, object]:
        return {
            "item_id": self.item_id,
            "is_blocked": self.is_blocked,
            "open_blockers": self.open_blockers,
            "blocked_containers": self.blocked_containers,
        }


class ReadinessEngine:
    """Memoizing evaluator of ``is_blocked`` over a :class:`GraphView`.

    Reads and invalidations share one re-entrant lock, so an invalidation
    issued after a commit is visible to every later read.

    *generation*, when given, returns a token that changes whenever the
    underlying store was modified by someone who cannot call
    :meth:`invalidate` (another connection or process). Every query checks it
    first and drops the whole cache on a change.
    """

    def __init__(self, graph: GraphView, *, generation: Callable[[], object] | None = None) -> None:
        self._graph = graph
        self._generation = generation
        self._seen_generation: object = None
        self._cache: dict[str, bool] = {}
        self._lock = threading.RLock()

    def _sync_generation(self) -> None:
        if self._generation is None:
            return
        current = self._generation()
        if current != self._seen_generation:
            if self._cache:
                logger.debug("Store changed externally; dropping %d cached readiness entries", len(self._cache))
            self._cache.clear()
            self._seen_generation = current

    # -- Queries -------------------------------------------------------------

    def is_blocked(self, item_id: str) -> bool:
        with self._lock:
            self._sync_generation()
            cached = self._cache.get(item_id)
            if cached is not None:
                return cached
            self._resolve(item_id)
            return self._cache[item_id]

    def is_ready(self, item_id: str) -> bool:
        return not self.is_blocked(item_id)

    def blocked_reasons(self, item_id: str) -> BlockedReasons:
        with self._lock:
            self._sync_generation()
            reasons = BlockedReasons(item_id=item_id)
            reasons.open_blockers = [o for o in self._graph.blocking_objects(item_id) if not self._graph.is_closed(o)]
            reasons.blocked_containers = [c for c in self._graph.containers_of(item_id) if self.is_blocked(c)]
            return reasons

    def _directly_blocked(self, item_id: str) -> bool:
        return any(not self._graph.is_closed(o) for o in self._graph.blocking_objects(item_id))

    def _resolve(self, item_id: str) -> None:
        """Fill the cache for *item_id* and every container it depends on.

        Iterative post-order walk up the containment chain. A node seen again
        while still on the current path is a containment cycle.
        """
        on_path: list[str] = []
        in_progress: set[str] = set()
        stack: list[tuple[str, bool]] = [(item_id, False)]

        while stack:
            node, expanded = stack.pop()
            if expanded:
                in_progress.discard(node)
                on_path.pop()
                self._cache[node] = any(self._cache[c] for c in self._graph.containers_of(node))
                continue
            if node in self._cache:
                continue
            if node in in_progress:
                cycle = [*on_path[on_path.index(node) :], node]
                logger.error("Containment cycle detected while resolving %s: %s", item_id, cycle)
                raise IntegrityError("Containment cycle detected", cycle)
            if self._directly_blocked(node):
                self._cache[node] = True
                continue
            in_progress.add(node)
            on_path.append(node)
            stack.append((node, True))
            for container in self._graph.containers_of(node):
                if container not in self._cache:
                    stack.append((container, False))

    def check_containment_acyclic(self, item_ids: Iterable[str]) -> None:
        """Walk every containment chain above *item_ids*; raise on a cycle."""
        done: set[str] = set()
        for start in item_ids:
            if start in done:
                continue
            on_path: list[str] = []
            in_progress: set[str] = set()
            stack: list[tuple[str, bool]] = [(start, False)]
            while stack:
                node, expanded = stack.pop()
                if expanded:
                    in_progress.discard(node)
                    on_path.pop()
                    done.add(node)
                    continue
                if node in done:
                    continue
                if node in in_progress:
                    raise IntegrityError("Containment cycle detected", [*on_path[on_path.index(node) :], node])
                in_progress.add(node)
                on_path.append(node)
                stack.append((node, True))
                stack.extend((c, False) for c in self._graph.containers_of(node))

    # -- Invalidation --------------------------------------------------------

    def affected_by(self, item_ids: Iterable[str]) -> set[str]:
        """Every item whose blocked state could depend on *item_ids*.

        Closure over blocking dependents and contained items. Over-approximates
        on purpose: a stale entry is a bug, a spurious recompute is not.
        """
        seen: set[str] = set()
        queue = deque(item_ids)
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self._graph.blocking_subjects(current))
            queue.extend(self._graph.contained_items(current))
        return seen

    def invalidate(self, item_ids: Iterable[str]) -> set[str]:
        """Drop cached state for *item_ids* and everything downstream of them."""
        with self._lock:
            affected = self.affected_by(item_ids)
            for item_id in affected:
                self._cache.pop(item_id, None)
            logger.debug("Invalidated readiness for %d item(s)", len(affected))
            return affected

    def invalidate_all(self) -> None:
        with self._lock:
            self._cache.clear()
            self._seen_generation = None

    def cache_info(self) -> dict[str, int]:
        with self._lock:
            blocked = sum(1 for v in self._cache.values() if v)
            return {"size": len(self._cache), "blocked": blocked, "ready": len(self._cache) - blocked}

    def is_cached(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._cache
