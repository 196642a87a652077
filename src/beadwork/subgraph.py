"""Cooked template subgraphs and the spawn contract.

A ``TemplateSubgraph`` is what a formula turns into once cooked: a root node,
the full node set and the intra-template dependency edges, all expressed in
template-local ids. Spawning it produces a ``SpawnResult`` that maps those
local ids onto freshly created item ids.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from types import MappingProxyType
from typing import Literal, Protocol

from beadwork.deps import BLOCKING_DEP_TYPES, CONTAINMENT_DEP_TYPES, Edge
from beadwork.errors import IntegrityError

ItemKind = Literal["epic", "task", "gate"]
VALID_ITEM_KINDS: frozenset[str] = frozenset({"epic", "task", "gate"})
CONTAINER_KINDS: frozenset[str] = frozenset({"epic"})


def validate_kind(kind: str) -> str:
    if kind not in VALID_ITEM_KINDS:
        msg = f"Unknown item kind '{kind}'. Valid kinds: {', '.join(sorted(VALID_ITEM_KINDS))}"
        raise ValueError(msg)
    return kind


def is_container(kind: str) -> bool:
    """Containers group children and are never actionable steps themselves."""
    return validate_kind(kind) in CONTAINER_KINDS


@dataclass(frozen=True)
class TemplateNode:
    local_id: str
    title: str
    kind: ItemKind = "task"
    description: str = ""

    def __post_init__(self) -> None:
        if not self.local_id:
            msg = "Template node id cannot be empty"
            raise ValueError(msg)
        validate_kind(self.kind)


@dataclass(frozen=True)
class TemplateSubgraph:
    """Immutable node set + edge set in template-local id space."""

    name: str
    root: str
    nodes: Mapping[str, TemplateNode]
    edges: tuple[Edge, ...] = ()

    def __post_init__(self) -> None:
        # Freeze the node mapping so a cooked template cannot drift after validation.
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))
        object.__setattr__(self, "edges", tuple(self.edges))
        if self.root not in self.nodes:
            msg = f"Template '{self.name}': root '{self.root}' is not a node"
            raise ValueError(msg)
        for key, node in self.nodes.items():
            if key != node.local_id:
                msg = f"Template '{self.name}': node key '{key}' does not match id '{node.local_id}'"
                raise ValueError(msg)
        for edge in self.edges:
            for endpoint in (edge.subject, edge.object):
                if endpoint not in self.nodes:
                    msg = f"Template '{self.name}': edge {edge.subject} -> {edge.object} references unknown node '{endpoint}'"
                    raise ValueError(msg)
            if edge.subject == edge.object:
                msg = f"Template '{self.name}': self-dependency on '{edge.subject}'"
                raise ValueError(msg)
        self._check_acyclic()

    def _check_acyclic(self) -> None:
        """Blocking edges and containment edges must each form a DAG."""
        for label, family in (("blocking", BLOCKING_DEP_TYPES), ("containment", CONTAINMENT_DEP_TYPES)):
            graph: dict[str, set[str]] = {}
            for edge in self.edges:
                if edge.type in family:
                    graph.setdefault(edge.subject, set()).add(edge.object)
            try:
                tuple(TopologicalSorter(graph).static_order())
            except CycleError as exc:
                raise IntegrityError(f"Template '{self.name}' has a {label} cycle", exc.args[1]) from exc

    def kind_of(self, local_id: str) -> str:
        return self.nodes[local_id].kind


@dataclass(frozen=True)
class SpawnResult:
    """Bijective template-id -> spawned-id mapping plus the spawned root."""

    root_id: str
    mapping: Mapping[str, str]
    created_edges: tuple[Edge, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "mapping", MappingProxyType(dict(self.mapping)))
        values = list(self.mapping.values())
        if len(set(values)) != len(values):
            msg = "Spawn mapping is not bijective: duplicate spawned ids"
            raise ValueError(msg)
        if self.root_id not in set(values):
            msg = f"Spawned root '{self.root_id}' is not in the spawn mapping"
            raise ValueError(msg)

    def spawned_id(self, local_id: str) -> str:
        try:
            return self.mapping[local_id]
        except KeyError:
            msg = f"Template id not in spawn mapping: {local_id}"
            raise KeyError(msg) from None

    def covers(self, subgraph: TemplateSubgraph) -> bool:
        return set(self.mapping) == set(subgraph.nodes) and self.mapping.get(subgraph.root) == self.root_id


class Spawner(Protocol):
    """Instantiates a template subgraph into concrete items and edges."""

    def spawn(self, subgraph: TemplateSubgraph, *, actor: str = "") -> SpawnResult: ...
