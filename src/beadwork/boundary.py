"""Entry/exit step discovery for spawned subgraphs.

Entry steps have nothing inside the subgraph blocking them; exit steps have
nothing inside the subgraph depending on them. The root and containers are
never steps. Every node is considered, not only the root's direct children,
so nested templates still yield their true global boundary.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from beadwork.deps import Edge, affects_ready_work
from beadwork.errors import NoActionableSteps
from beadwork.subgraph import TemplateSubgraph, is_container

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundarySteps:
    entry_steps: frozenset[str]
    exit_steps: frozenset[str]

    @property
    def targets(self) -> list[str]:
        """Deduplicated union of entry and exit steps, sorted for stable output."""
        return sorted(self.entry_steps | self.exit_steps)

    def mapped(self, mapping: Mapping[str, str]) -> BoundarySteps:
        return BoundarySteps(
            entry_steps=frozenset(mapping[n] for n in self.entry_steps),
            exit_steps=frozenset(mapping[n] for n in self.exit_steps),
        )


def find_boundary_steps_in(
    kinds: Mapping[str, str],
    edges: Iterable[Edge],
    root: str,
    *,
    label: str = "subgraph",
) -> BoundarySteps:
    """Compute entry/exit steps of any node set sharing one id space.

    *kinds* maps every node id to its item kind. Edges with an endpoint
    outside *kinds* are ignored: only in-subgraph blockers count.
    """
    candidates = {n for n, kind in kinds.items() if n != root and not is_container(kind)}
    if not candidates:
        msg = f"{label} has no actionable steps (every non-root node is a container)"
        raise NoActionableSteps(msg)

    blocked_subjects: set[str] = set()
    depended_objects: set[str] = set()
    for edge in edges:
        if edge.subject not in kinds or edge.object not in kinds:
            continue
        if not affects_ready_work(edge.type):
            continue
        blocked_subjects.add(edge.subject)
        depended_objects.add(edge.object)

    entry = frozenset(candidates - blocked_subjects)
    exit_ = frozenset(candidates - depended_objects)
    if not entry:
        msg = f"{label} has no entry steps: every step is blocked inside the subgraph"
        raise NoActionableSteps(msg)
    if not exit_:
        msg = f"{label} has no exit steps: every step has a dependent inside the subgraph"
        raise NoActionableSteps(msg)

    logger.debug("Boundary of %s: entry=%s exit=%s", label, sorted(entry), sorted(exit_))
    return BoundarySteps(entry_steps=entry, exit_steps=exit_)


def find_boundary_steps(subgraph: TemplateSubgraph) -> BoundarySteps:
    """Boundary steps of a cooked template, in template-local ids."""
    kinds = {local_id: node.kind for local_id, node in subgraph.nodes.items()}
    return find_boundary_steps_in(kinds, subgraph.edges, subgraph.root, label=f"Formula '{subgraph.name}'")
