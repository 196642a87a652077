"""BondingMixin — spawn-and-bond orchestration on top of the Bonder.

``bond_formula`` spawns a cooked formula and bonds it to a head in one outer
transaction: callers see the whole operation committed or nothing at all.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from beadwork.bonding import BondProjection, Bonder, BondResult, validate_bond_operands
from beadwork.db_base import DBMixinProtocol
from beadwork.deps import BLOCKS, Edge
from beadwork.subgraph import SpawnResult, TemplateNode, TemplateSubgraph

if TYPE_CHECKING:
    from beadwork.core import Item

logger = logging.getLogger(__name__)


class BondingMixin(DBMixinProtocol):
    """Bond formulas and existing items to head items.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``BeadDB`` at composition time via MRO.
    """

    _bonder: Bonder | None

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

        # From SpawnMixin
        def spawn(self, subgraph: TemplateSubgraph, *, actor: str = "") -> SpawnResult: ...

        # From DependenciesMixin
        def contained_items(self, item_id: str) -> list[str]: ...

    @property
    def bonder(self) -> Bonder:
        if self._bonder is None:
            self._bonder = Bonder(self, self.readiness, locks=self._locks)  # type: ignore[arg-type]
        return self._bonder

    def bond_formula(
        self,
        head_id: str,
        subgraph: TemplateSubgraph,
        *,
        policy: str = "default",
        explicit_type_set: bool = False,
        attach_type: str = BLOCKS,
        actor: str = "",
    ) -> BondResult:
        """Spawn *subgraph* and bond it to *head_id*.

        Validation and boundary discovery run before anything is spawned, so
        a rejected bond leaves no spawned items behind.
        """
        head = self.get_item(head_id)  # raises KeyError if not found
        self.bonder.project(
            head_id,
            subgraph,
            policy,
            head_origin=head.origin,
            spawned_origin="formula",
            attach_type=attach_type,
        )

        # Item locks are always taken before the write lock.
        with self._locks.hold([head_id]), self.transaction():
            spawn = self.spawn(subgraph, actor=actor)
            result = self.bonder.bond(
                head_id,
                spawn,
                subgraph,
                policy,
                explicit_type_set=explicit_type_set,
                attach_type=attach_type,
                head_origin=head.origin,
                spawned_origin="formula",
                actor=actor,
            )
            self._record_event(head_id, "bonded", actor=actor, new_value=f"{policy}:{spawn.root_id}")
        return result

    def bond_items(
        self,
        head_id: str,
        other_id: str,
        *,
        policy: str = "default",
        explicit_type_set: bool = False,
        attach_type: str = BLOCKS,
        actor: str = "",
    ) -> BondResult:
        """Bond two existing items.

        Under ``require`` the formula-spawned side is treated as the spawned
        subgraph and the proto side as the head, whichever order they were
        given in.
        """
        head = self.get_item(head_id)
        other = self.get_item(other_id)
        validate_bond_operands(
            policy,
            head_origin=head.origin,
            spawned_origin=other.origin,
            explicit_type_set=explicit_type_set,
            attach_type=attach_type,
        )
        if policy == "require" and head.origin == "formula":
            logger.info("bond_items: swapping operands so proto %s is the head", other.id)
            head, other = other, head

        subgraph, spawn = self.subgraph_of(other.id)
        with self._locks.hold([head.id, other.id]), self.transaction():
            result = self.bonder.bond(
                head.id,
                spawn,
                subgraph,
                policy,
                explicit_type_set=explicit_type_set,
                attach_type=attach_type,
                head_origin=head.origin,
                spawned_origin=other.origin,
                actor=actor,
            )
            self._record_event(head.id, "bonded", actor=actor, new_value=f"{policy}:{other.id}")
        return result

    def bond_dry_run(
        self,
        head_id: str,
        subgraph: TemplateSubgraph,
        *,
        policy: str = "default",
        explicit_type_set: bool = False,
        attach_type: str = BLOCKS,
    ) -> BondProjection:
        """Edges ``bond_formula`` would create, in template-local ids."""
        head = self.get_item(head_id)
        return self.bonder.project(
            head_id,
            subgraph,
            policy,
            explicit_type_set=explicit_type_set,
            attach_type=attach_type,
            head_origin=head.origin,
            spawned_origin="formula",
        )

    def subgraph_of(self, root_id: str) -> tuple[TemplateSubgraph, SpawnResult]:
        """Read back the subgraph contained under *root_id* from storage.

        Nodes are *root_id* plus everything reachable through containment;
        edges are the dependencies among those nodes. Ids are item ids, so
        the returned spawn mapping is the identity.
        """
        root = self.get_item(root_id)
        members: dict[str, Item] = {root.id: root}
        frontier = [root.id]
        while frontier:
            current = frontier.pop()
            for child_id in self.contained_items(current):
                if child_id not in members:
                    members[child_id] = self.get_item(child_id)
                    frontier.append(child_id)

        ids = list(members)
        ph = ",".join("?" * len(ids))
        rows = self.conn.execute(
            f"SELECT subject_id, object_id, type FROM dependencies WHERE subject_id IN ({ph}) AND object_id IN ({ph})",
            [*ids, *ids],
        ).fetchall()
        edges = tuple(Edge(r["subject_id"], r["object_id"], r["type"]) for r in rows)
        nodes = {i: TemplateNode(local_id=i, title=item.title, kind=item.kind) for i, item in members.items()}  # type: ignore[arg-type]
        subgraph = TemplateSubgraph(name=root.formula or root.id, root=root.id, nodes=nodes, edges=edges)
        return subgraph, SpawnResult(root_id=root.id, mapping={i: i for i in ids})
