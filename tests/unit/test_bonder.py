"""Tests for the Bonder against an in-memory edge store."""

from __future__ import annotations

import logging

import pytest

from beadwork.bonding import OVERRIDE_IGNORED_WARNING, Bonder, plan_bond_edges, validate_bond_operands
from beadwork.boundary import BoundarySteps
from beadwork.deps import BLOCKS, PARENT_CHILD, WAITS_FOR, Edge
from beadwork.errors import IntegrityError, InvalidPolicyForOperands, NoActionableSteps, StorageError, ValidationError
from beadwork.subgraph import SpawnResult, TemplateSubgraph
from tests._db_factory import make_subgraph
from tests._graph import MemoryGraph


def _spawn(graph: MemoryGraph, sg: TemplateSubgraph, prefix: str = "s") -> SpawnResult:
    """Materialize *sg* into *graph* with ids ``<prefix>-<local>``."""
    mapping = {local: f"{prefix}-{local}" for local in sg.nodes}
    graph.add(*mapping.values())
    for e in sg.edges:
        graph.link(mapping[e.subject], mapping[e.object], e.type)
    return SpawnResult(root_id=mapping[sg.root], mapping=mapping)


@pytest.fixture
def graph() -> MemoryGraph:
    g = MemoryGraph()
    g.add("H")
    return g


@pytest.fixture
def bonder(graph: MemoryGraph) -> Bonder:
    return Bonder(graph, graph.engine)


class TestOperandValidation:
    def test_unknown_policy(self) -> None:
        with pytest.raises(ValidationError, match="Unknown bond policy"):
            validate_bond_operands("strict")

    def test_require_two_protos(self) -> None:
        with pytest.raises(InvalidPolicyForOperands, match="pre-existing items"):
            validate_bond_operands("require", head_origin="proto", spawned_origin="proto")

    def test_require_two_formulas(self) -> None:
        with pytest.raises(InvalidPolicyForOperands, match="template instantiations"):
            validate_bond_operands("require", head_origin="formula", spawned_origin="formula")

    def test_invalid_policy_is_a_validation_error(self) -> None:
        assert issubclass(InvalidPolicyForOperands, ValidationError)

    def test_default_accepts_any_operands(self) -> None:
        assert validate_bond_operands("default", head_origin="formula", spawned_origin="formula") == []

    def test_override_warning_under_require(self) -> None:
        assert validate_bond_operands("require", explicit_type_set=True) == [OVERRIDE_IGNORED_WARNING]

    def test_override_under_default_is_silent(self) -> None:
        assert validate_bond_operands("default", explicit_type_set=True) == []

    def test_attach_type_must_block(self) -> None:
        with pytest.raises(ValidationError, match="blocking type"):
            validate_bond_operands("default", attach_type=PARENT_CHILD)


class TestPlanBondEdges:
    def test_default(self) -> None:
        assert plan_bond_edges("H", "R", "default") == [Edge("R", "H")]

    def test_default_with_attach_type(self) -> None:
        assert plan_bond_edges("H", "R", "default", attach_type=WAITS_FOR) == [Edge("R", "H", WAITS_FOR)]

    def test_require_dedups_targets(self) -> None:
        boundary = BoundarySteps(entry_steps=frozenset({"T"}), exit_steps=frozenset({"T"}))
        assert plan_bond_edges("H", "R", "require", boundary) == [Edge("H", "T")]

    def test_require_needs_boundary(self) -> None:
        with pytest.raises(ValidationError):
            plan_bond_edges("H", "R", "require")


class TestScenarios:
    def test_single_task_require(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T"])
        spawn = _spawn(graph, sg)
        result = bonder.bond("H", spawn, sg, "require")
        assert result.created_edges == [Edge("H", "s-T")]

    def test_sequential_require(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T1", "T2", "T3"], [("T2", "T1"), ("T3", "T2")])
        spawn = _spawn(graph, sg)
        result = bonder.bond("H", spawn, sg, "require")
        assert result.entry_steps == ["s-T1"]
        assert result.exit_steps == ["s-T3"]
        assert set(result.created_edges) == {Edge("H", "s-T1"), Edge("H", "s-T3")}

    def test_parallel_start_require(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T1", "T2", "T3"], [("T3", "T1"), ("T3", "T2")])
        spawn = _spawn(graph, sg)
        result = bonder.bond("H", spawn, sg, "require")
        assert result.entry_steps == ["s-T1", "s-T2"]
        assert result.exit_steps == ["s-T3"]
        assert set(result.created_edges) == {Edge("H", "s-T1"), Edge("H", "s-T2"), Edge("H", "s-T3")}

    def test_gate_require(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["Gate", "Tstep"], kinds={"Gate": "gate"}, extra_edges=[Edge("Tstep", "Gate", WAITS_FOR)])
        spawn = _spawn(graph, sg)
        result = bonder.bond("H", spawn, sg, "require")
        assert result.entry_steps == ["s-Gate"]
        # Tstep qualifies only as an exit step
        assert result.exit_steps == ["s-Tstep"]

    def test_containers_only_require(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["E1"], kinds={"E1": "epic"})
        spawn = _spawn(graph, sg)
        edges_before = set(graph.edges)
        with pytest.raises(NoActionableSteps):
            bonder.bond("H", spawn, sg, "require")
        assert graph.edges == edges_before

    def test_sequential_default(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T1", "T2", "T3"], [("T2", "T1"), ("T3", "T2")])
        spawn = _spawn(graph, sg)
        result = bonder.bond("H", spawn, sg, "default")
        assert result.created_edges == [Edge("s-tmpl", "H")]
        assert result.entry_steps == []
        assert result.targets == []


class TestInvariants:
    def test_default_blocks_whole_subgraph_until_head_closes(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T1", "T2"], [("T2", "T1")])
        spawn = _spawn(graph, sg)
        assert graph.engine.is_ready("s-T1")
        bonder.bond("H", spawn, sg, "default")
        assert graph.engine.is_blocked("s-T1")
        assert graph.engine.is_blocked("s-tmpl")
        graph.close("H")
        assert graph.engine.is_ready("s-T1")

    def test_require_readiness_independent_of_head(self, graph: MemoryGraph, bonder: Bonder) -> None:
        graph.add("upstream")
        graph.link("H", "upstream")
        sg = make_subgraph(["T1", "T2"], [("T2", "T1")])
        spawn = _spawn(graph, sg)
        bonder.bond("H", spawn, sg, "require")
        assert graph.engine.is_blocked("H")
        assert graph.engine.is_ready("s-T1")
        assert graph.engine.is_blocked("s-T2")
        assert not any(e.subject == "s-tmpl" and e.object == "H" for e in graph.edges)

    def test_head_blocked_until_every_target_closes(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T1", "T2"], [("T2", "T1")])
        spawn = _spawn(graph, sg)
        bonder.bond("H", spawn, sg, "require")
        graph.close("s-T1")
        assert graph.engine.is_blocked("H")
        graph.close("s-T2")
        assert graph.engine.is_ready("H")

    def test_rebond_is_idempotent(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T1", "T2"], [("T2", "T1")])
        spawn = _spawn(graph, sg)
        first = bonder.bond("H", spawn, sg, "require")
        count = len(graph.edges)
        second = bonder.bond("H", spawn, sg, "require")
        assert second.created_edges == []
        assert set(second.existing_edges) == set(first.created_edges)
        assert len(graph.edges) == count

    def test_override_warning_logged(self, graph: MemoryGraph, bonder: Bonder, caplog: pytest.LogCaptureFixture) -> None:
        sg = make_subgraph(["T"])
        spawn = _spawn(graph, sg)
        with caplog.at_level(logging.WARNING, logger="beadwork.bonding"):
            result = bonder.bond("H", spawn, sg, "require", explicit_type_set=True)
        assert result.warnings == [OVERRIDE_IGNORED_WARNING]
        assert result.created_edges == [Edge("H", "s-T")]
        assert "override ignored" in caplog.text


class TestFailures:
    def test_missing_head(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T"])
        spawn = _spawn(graph, sg)
        with pytest.raises(KeyError, match="nope"):
            bonder.bond("nope", spawn, sg, "default")

    def test_head_inside_spawn_rejected(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T"])
        spawn = _spawn(graph, sg)
        with pytest.raises(ValidationError, match="part of the spawned subgraph"):
            bonder.bond("s-T", spawn, sg, "default")

    def test_mismatched_spawn_rejected(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T"])
        other = make_subgraph(["T", "U"])
        spawn = _spawn(graph, sg)
        with pytest.raises(ValidationError, match="does not match"):
            bonder.bond("H", spawn, other, "require")

    def test_cycle_rejected_before_write(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T"])
        spawn = _spawn(graph, sg)
        graph.link("s-T", "H")
        edges_before = set(graph.edges)
        with pytest.raises(IntegrityError) as exc_info:
            bonder.bond("H", spawn, sg, "require")
        assert "H" in exc_info.value.item_ids
        assert graph.edges == edges_before

    def test_storage_fault_rolls_back_every_edge(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T1", "T2", "T3"], [("T3", "T1"), ("T3", "T2")])
        spawn = _spawn(graph, sg)
        edges_before = set(graph.edges)
        graph.fail_after = 2
        with pytest.raises(StorageError):
            bonder.bond("H", spawn, sg, "require")
        assert graph.edges == edges_before
        assert graph.engine.is_ready("s-T1")


class TestProject:
    def test_dry_run_uses_template_ids(self, graph: MemoryGraph, bonder: Bonder) -> None:
        sg = make_subgraph(["T1", "T2"], [("T2", "T1")])
        projection = bonder.project("H", sg, "require")
        assert projection.edges == [Edge("H", "T1"), Edge("H", "T2")]
        assert projection.root == "tmpl"

    def test_dry_run_default(self, bonder: Bonder) -> None:
        projection = bonder.project("H", make_subgraph(["T"]), "default")
        assert projection.edges == [Edge("tmpl", "H", BLOCKS)]
        assert projection.targets == []

    def test_dry_run_with_mapping(self, bonder: Bonder) -> None:
        sg = make_subgraph(["T"])
        projection = bonder.project("H", sg, "require", mapping={"tmpl": "r-1", "T": "t-1"})
        assert projection.edges == [Edge("H", "t-1")]

    def test_dry_run_writes_nothing(self, graph: MemoryGraph, bonder: Bonder) -> None:
        edges_before = set(graph.edges)
        bonder.project("H", make_subgraph(["T"]), "require")
        assert graph.edges == edges_before
        assert graph.commits == 0

    def test_dry_run_validates(self, bonder: Bonder) -> None:
        with pytest.raises(InvalidPolicyForOperands):
            bonder.project("H", make_subgraph(["T"]), "require", head_origin="formula")
