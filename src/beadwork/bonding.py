"""Bonding a spawned subgraph onto a pre-existing head item.

Two attachment policies:

``default``
    The spawned root is blocked by the head: one edge ``(root, head)``.
    Everything inside the spawned subgraph waits for the head via
    containment.

``require``
    The head is blocked by every boundary (entry and exit) step of the
    spawned subgraph: edges ``(head, step)``. No edge of any kind connects
    the spawned root to the head, so the head's own blocked state never
    reaches the spawned steps through containment and the entry steps are
    ready immediately.

All edges of one bond are written in a single store transaction; existing
edges are skipped silently.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Literal, Protocol

from beadwork.boundary import BoundarySteps, find_boundary_steps
from beadwork.deps import BLOCKING_DEP_TYPES, BLOCKS, Edge
from beadwork.errors import IntegrityError, InvalidPolicyForOperands, ValidationError
from beadwork.locking import ItemLocks
from beadwork.readiness import ReadinessEngine
from beadwork.subgraph import SpawnResult, TemplateSubgraph
from beadwork.types.bonding import BondProjectionDict, BondResultDict

logger = logging.getLogger(__name__)

BondPolicy = Literal["default", "require"]
VALID_BOND_POLICIES: frozenset[str] = frozenset({"default", "require"})

# "formula": the side came from instantiating a template.
# "proto": the side is an independently created item.
OperandOrigin = Literal["formula", "proto"]
VALID_ORIGINS: frozenset[str] = frozenset({"formula", "proto"})

OVERRIDE_IGNORED_WARNING = "Attachment type override ignored: policy 'require' always blocks the head on the spawned boundary steps"


class EdgeStore(Protocol):
    """Storage mutation contract consumed by the bonder."""

    def has_item(self, item_id: str) -> bool: ...

    def find_cycle(
        self,
        subject: str,
        object: str,
        *,
        dep_type: str = BLOCKS,
        pending: Iterable[Edge] = (),
    ) -> list[str] | None:
        """Path that adding ``subject -> object`` would close, or None."""
        ...

    def add_dependencies(self, edges: Sequence[Edge], *, actor: str = "") -> list[Edge]:
        """Insert all *edges* atomically; return the ones that did not already exist."""
        ...

    def transaction(self) -> AbstractContextManager[None]: ...


@dataclass
class BondResult:
    policy: str
    head_id: str
    spawned_root_id: str
    entry_steps: list[str] = field(default_factory=list)
    exit_steps: list[str] = field(default_factory=list)
    targets: list[str] = field(default_factory=list)
    created_edges: list[Edge] = field(default_factory=list)
    existing_edges: list[Edge] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> BondResultDict:
        return {
            "policy": self.policy,
            "head_id": self.head_id,
            "spawned_root_id": self.spawned_root_id,
            "entry_steps": self.entry_steps,
            "exit_steps": self.exit_steps,
            "targets": self.targets,
            "created_edges": [e.to_dict() for e in self.created_edges],
            "existing_edges": [e.to_dict() for e in self.existing_edges],
            "warnings": self.warnings,
        }


@dataclass
class BondProjection:
    """What a bond would write, computed without spawning or storing anything."""

    policy: str
    head_id: str
    root: str
    entry_steps: list[str] = field(default_factory=list)
    exit_steps: list[str] = field(default_factory=list)
    targets: list[str] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> BondProjectionDict:
        return {
            "policy": self.policy,
            "head_id": self.head_id,
            "root": self.root,
            "entry_steps": self.entry_steps,
            "exit_steps": self.exit_steps,
            "targets": self.targets,
            "edges": [e.to_dict() for e in self.edges],
            "warnings": self.warnings,
        }


def validate_bond_operands(
    policy: str,
    *,
    head_origin: str = "proto",
    spawned_origin: str = "formula",
    explicit_type_set: bool = False,
    attach_type: str = BLOCKS,
) -> list[str]:
    """Check that *policy* applies to these operands; return warnings.

    ``require`` needs exactly one template-instantiated side and one
    pre-existing side.
    """
    if policy not in VALID_BOND_POLICIES:
        msg = f"Unknown bond policy '{policy}'. Valid policies: {', '.join(sorted(VALID_BOND_POLICIES))}"
        raise ValidationError(msg)
    for label, origin in (("head", head_origin), ("spawned side", spawned_origin)):
        if origin not in VALID_ORIGINS:
            msg = f"Unknown {label} origin '{origin}'. Valid origins: {', '.join(sorted(VALID_ORIGINS))}"
            raise ValidationError(msg)

    if attach_type not in BLOCKING_DEP_TYPES:
        msg = f"Attachment type must be a blocking type, got '{attach_type}'"
        raise ValidationError(msg)

    warnings: list[str] = []
    if policy == "require":
        if head_origin == spawned_origin:
            both = "template instantiations" if head_origin == "formula" else "pre-existing items"
            msg = f"Policy 'require' needs one formula side and one proto side; both operands are {both}"
            raise InvalidPolicyForOperands(msg)
        if explicit_type_set:
            warnings.append(OVERRIDE_IGNORED_WARNING)
    return warnings


def plan_bond_edges(
    head_id: str,
    root_id: str,
    policy: str,
    boundary: BoundarySteps | None = None,
    *,
    attach_type: str = BLOCKS,
) -> list[Edge]:
    """Edges a bond writes, deduplicated, in a stable order.

    *attach_type* only applies to ``default``; ``require`` always uses ``blocks``.
    """
    if policy == "default":
        return [Edge(root_id, head_id, attach_type)]
    if boundary is None:
        msg = "Policy 'require' needs the boundary steps of the spawned subgraph"
        raise ValidationError(msg)
    return [Edge(head_id, target, BLOCKS) for target in boundary.targets]


class Bonder:
    """Wires spawned subgraphs to head items through an :class:`EdgeStore`."""

    def __init__(
        self,
        store: EdgeStore,
        readiness: ReadinessEngine | None = None,
        *,
        locks: ItemLocks | None = None,
    ) -> None:
        self.store = store
        self.readiness = readiness
        self.locks = locks if locks is not None else ItemLocks()

    def bond(
        self,
        head_id: str,
        spawn: SpawnResult,
        subgraph: TemplateSubgraph,
        policy: str,
        *,
        explicit_type_set: bool = False,
        head_origin: str = "proto",
        spawned_origin: str = "formula",
        attach_type: str = BLOCKS,
        actor: str = "",
    ) -> BondResult:
        warnings = validate_bond_operands(
            policy,
            head_origin=head_origin,
            spawned_origin=spawned_origin,
            explicit_type_set=explicit_type_set,
            attach_type=attach_type,
        )
        if not spawn.covers(subgraph):
            msg = f"Spawn result does not match formula '{subgraph.name}' (mapping or root differ)"
            raise ValidationError(msg)
        if not self.store.has_item(head_id):
            msg = f"Item not found: {head_id}"
            raise KeyError(msg)
        if head_id in spawn.mapping.values():
            msg = f"Head {head_id} is part of the spawned subgraph"
            raise ValidationError(msg)
        for warning in warnings:
            logger.warning("bond %s <- %s: %s", head_id, spawn.root_id, warning)

        result = BondResult(policy=policy, head_id=head_id, spawned_root_id=spawn.root_id, warnings=warnings)
        boundary: BoundarySteps | None = None
        if policy == "require":
            boundary = find_boundary_steps(subgraph).mapped(spawn.mapping)
            result.entry_steps = sorted(boundary.entry_steps)
            result.exit_steps = sorted(boundary.exit_steps)
            result.targets = boundary.targets
        edges = plan_bond_edges(head_id, spawn.root_id, policy, boundary, attach_type=attach_type)

        with self.locks.hold([head_id, spawn.root_id]):
            ready_before = self._snapshot_ready(result.entry_steps)
            with self.store.transaction():
                self._check_cycles(edges)
                created = self.store.add_dependencies(edges, actor=actor)
                self._check_postconditions(result, ready_before)

        created_set = set(created)
        result.created_edges = [e for e in edges if e in created_set]
        result.existing_edges = [e for e in edges if e not in created_set]
        logger.info(
            "Bonded %s to head %s (policy=%s, created=%d, existing=%d)",
            spawn.root_id,
            head_id,
            policy,
            len(result.created_edges),
            len(result.existing_edges),
        )
        return result

    def project(
        self,
        head_id: str,
        subgraph: TemplateSubgraph,
        policy: str,
        *,
        explicit_type_set: bool = False,
        head_origin: str = "proto",
        spawned_origin: str = "formula",
        attach_type: str = BLOCKS,
        mapping: Mapping[str, str] | None = None,
    ) -> BondProjection:
        """Dry run: the edges :meth:`bond` would write, touching no storage.

        Ids are template-local unless *mapping* is supplied.
        """
        warnings = validate_bond_operands(
            policy,
            head_origin=head_origin,
            spawned_origin=spawned_origin,
            explicit_type_set=explicit_type_set,
            attach_type=attach_type,
        )
        ids: Mapping[str, str] = mapping if mapping is not None else {n: n for n in subgraph.nodes}
        root = ids[subgraph.root]
        projection = BondProjection(policy=policy, head_id=head_id, root=root, warnings=warnings)
        boundary: BoundarySteps | None = None
        if policy == "require":
            boundary = find_boundary_steps(subgraph).mapped(ids)
            projection.entry_steps = sorted(boundary.entry_steps)
            projection.exit_steps = sorted(boundary.exit_steps)
            projection.targets = boundary.targets
        projection.edges = plan_bond_edges(head_id, root, policy, boundary, attach_type=attach_type)
        return projection

    # -- internals -----------------------------------------------------------

    def _check_cycles(self, edges: Sequence[Edge]) -> None:
        # Earlier edges of the same batch count as already present.
        for index, edge in enumerate(edges):
            cycle = self.store.find_cycle(edge.subject, edge.object, dep_type=edge.type, pending=edges[:index])
            if cycle:
                raise IntegrityError(f"Bond edge {edge.subject} -> {edge.object} would create a cycle", cycle)

    def _snapshot_ready(self, item_ids: Iterable[str]) -> dict[str, bool]:
        if self.readiness is None:
            return {}
        return {i: self.readiness.is_ready(i) for i in item_ids}

    def _check_postconditions(self, result: BondResult, ready_before: dict[str, bool]) -> None:
        """Entry steps that were ready before a require bond must still be ready."""
        if self.readiness is None or result.policy != "require":
            return
        regressed = [i for i, was_ready in ready_before.items() if was_ready and self.readiness.is_blocked(i)]
        if regressed:
            raise IntegrityError("Bond with policy 'require' blocked previously ready entry steps", sorted(regressed))
