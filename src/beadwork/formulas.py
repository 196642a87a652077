"""Formula TOML registry and the cook step.

Reads formula definitions from .beadwork/formulas/*.toml. Each file defines
one formula::

    [formula]
    name = "release"
    title = "Cut a release"

    [[steps]]
    id = "build"
    title = "Build artifacts"

    [[steps]]
    id = "publish"
    title = "Publish"
    needs = ["build"]
    waits_for = ["release-approval"]

Cooking turns a formula into a :class:`~beadwork.subgraph.TemplateSubgraph`
rooted at an epic named after the formula.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from pathlib import Path
from typing import Any, Protocol

from beadwork.deps import BLOCKS, CONDITIONAL_BLOCKS, PARENT_CHILD, WAITS_FOR, Edge
from beadwork.errors import ValidationError
from beadwork.subgraph import VALID_ITEM_KINDS, TemplateNode, TemplateSubgraph, is_container

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"^[\w-]+$")


@dataclass(frozen=True)
class FormulaStep:
    id: str
    title: str
    kind: str = "task"
    needs: tuple[str, ...] = ()
    waits_for: tuple[str, ...] = ()
    conditional_on: tuple[str, ...] = ()
    parent: str | None = None
    description: str = ""


@dataclass(frozen=True)
class Formula:
    """A formula definition loaded from a TOML file."""

    name: str
    title: str
    description: str = ""
    steps: tuple[FormulaStep, ...] = ()

    def step(self, step_id: str) -> FormulaStep:
        for s in self.steps:
            if s.id == step_id:
                return s
        msg = f"Formula '{self.name}' has no step '{step_id}'"
        raise KeyError(msg)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "steps": [
                {
                    "id": s.id,
                    "title": s.title,
                    "kind": s.kind,
                    "needs": list(s.needs),
                    "waits_for": list(s.waits_for),
                    "conditional_on": list(s.conditional_on),
                    "parent": s.parent,
                }
                for s in self.steps
            ],
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _str_list(value: Any, field_name: str, step_id: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"Step '{step_id}': {field_name} must be a list of strings"
        raise ValidationError(msg)
    return tuple(value)


def _parse_step(raw: Any, index: int) -> FormulaStep:
    if not isinstance(raw, dict):
        msg = f"Step #{index} must be a table"
        raise ValidationError(msg)
    step_id = raw.get("id")
    if not isinstance(step_id, str) or not _SAFE_NAME_RE.match(step_id):
        msg = f"Step #{index}: id must be a non-empty string of letters, digits, '_' or '-'"
        raise ValidationError(msg)
    title = raw.get("title", step_id)
    kind = raw.get("kind", "task")
    description = raw.get("description", "")
    parent = raw.get("parent")
    if not isinstance(title, str) or not title.strip():
        msg = f"Step '{step_id}': title must be a non-empty string"
        raise ValidationError(msg)
    if kind not in VALID_ITEM_KINDS:
        msg = f"Step '{step_id}': unknown kind '{kind}'. Valid kinds: {', '.join(sorted(VALID_ITEM_KINDS))}"
        raise ValidationError(msg)
    if not isinstance(description, str):
        msg = f"Step '{step_id}': description must be a string"
        raise ValidationError(msg)
    if parent is not None and not isinstance(parent, str):
        msg = f"Step '{step_id}': parent must be a string"
        raise ValidationError(msg)
    return FormulaStep(
        id=step_id,
        title=title,
        kind=kind,
        needs=_str_list(raw.get("needs", []), "needs", step_id),
        waits_for=_str_list(raw.get("waits_for", []), "waits_for", step_id),
        conditional_on=_str_list(raw.get("conditional_on", []), "conditional_on", step_id),
        parent=parent,
        description=description,
    )


def _check_references(name: str, steps: Sequence[FormulaStep]) -> None:
    by_id = {s.id: s for s in steps}
    for s in steps:
        for ref in (*s.needs, *s.conditional_on):
            if ref not in by_id:
                msg = f"Formula '{name}': step '{s.id}' depends on unknown step '{ref}'"
                raise ValidationError(msg)
            if ref == s.id:
                msg = f"Formula '{name}': step '{s.id}' depends on itself"
                raise ValidationError(msg)
        if s.parent is not None:
            parent = by_id.get(s.parent)
            if parent is None:
                msg = f"Formula '{name}': step '{s.id}' has unknown parent '{s.parent}'"
                raise ValidationError(msg)
            if not is_container(parent.kind):
                msg = f"Formula '{name}': parent '{s.parent}' of step '{s.id}' must be an epic"
                raise ValidationError(msg)

    ordering: dict[str, set[str]] = {s.id: set(s.needs) | set(s.conditional_on) for s in steps}
    nesting: dict[str, set[str]] = {s.id: {s.parent} if s.parent else set() for s in steps}
    for label, graph in (("dependency", ordering), ("parent", nesting)):
        try:
            tuple(TopologicalSorter(graph).static_order())
        except CycleError as exc:
            cycle = " -> ".join(exc.args[1])
            msg = f"Formula '{name}': {label} cycle: {cycle}"
            raise ValidationError(msg) from exc


def parse_formula(data: Mapping[str, Any]) -> Formula:
    """Build a :class:`Formula` from decoded TOML (or an equivalent dict)."""
    table = data.get("formula")
    if not isinstance(table, dict):
        msg = "Invalid formula (missing [formula] table)"
        raise ValidationError(msg)
    name = table.get("name")
    if not isinstance(name, str) or not _SAFE_NAME_RE.match(name):
        msg = "Invalid formula ([formula] name must be letters, digits, '_' or '-')"
        raise ValidationError(msg)
    title = table.get("title", name)
    description = table.get("description", "")
    if not isinstance(title, str) or not isinstance(description, str):
        msg = f"Formula '{name}': title and description must be strings"
        raise ValidationError(msg)

    raw_steps = data.get("steps", [])
    if not isinstance(raw_steps, list) or not raw_steps:
        msg = f"Formula '{name}' must define at least one [[steps]] entry"
        raise ValidationError(msg)
    steps = [_parse_step(raw, i) for i, raw in enumerate(raw_steps, start=1)]

    seen: set[str] = set()
    for s in steps:
        if s.id in seen or s.id == name:
            msg = f"Formula '{name}': duplicate step id '{s.id}'"
            raise ValidationError(msg)
        seen.add(s.id)
    _check_references(name, steps)
    return Formula(name=name, title=title, description=description, steps=tuple(steps))


def load_formula(path: Path) -> Formula:
    """Parse one formula file. Raises ValidationError if it is unusable."""
    import tomllib

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Failed to read formula TOML {path}: {exc}"
        raise ValidationError(msg) from exc
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Failed to parse formula TOML {path}: {exc}"
        raise ValidationError(msg) from exc
    return parse_formula(data)


def _parse_toml(path: Path) -> Formula | None:
    """Load a registry entry. Returns None (and logs) on error."""
    try:
        formula = load_formula(path)
    except ValidationError:
        logger.warning("Skipping invalid formula TOML: %s", path, exc_info=True)
        return None
    if formula.name != path.stem:
        logger.warning("Invalid formula TOML ([formula] name must match filename stem %r): %s", path.stem, path)
        return None
    return formula


def list_formulas(formulas_dir: Path) -> list[Formula]:
    """Read all *.toml files from the formulas directory.

    Skips malformed files and non-TOML files.
    Returns an empty list if the directory doesn't exist.
    """
    if not formulas_dir.is_dir():
        return []
    results = []
    for p in sorted(formulas_dir.iterdir()):
        if p.suffix != ".toml":
            continue
        formula = _parse_toml(p)
        if formula is not None:
            results.append(formula)
    return results


def find_formula(formulas_dir: Path, name: str) -> Formula | None:
    """Load a single formula by name. Returns None if not found or name is invalid."""
    if not _SAFE_NAME_RE.match(name):
        return None  # Reject path traversal attempts
    toml_path = formulas_dir / f"{name}.toml"
    if not toml_path.is_file():
        return None
    return _parse_toml(toml_path)


# ---------------------------------------------------------------------------
# Cooking
# ---------------------------------------------------------------------------


class GateExpander(Protocol):
    """Adds nodes and edges for one step while a formula is cooked."""

    def expand(
        self,
        formula: Formula,
        step: FormulaStep,
        nodes: dict[str, TemplateNode],
        edges: list[Edge],
    ) -> None: ...


class WaitsForGateExpander:
    """Each ``waits_for`` entry becomes a gate the step waits on.

    The gate is named ``<step>.gate.<n>`` and sits in the same container as
    the step, so it is blocked whenever the step's container is.
    """

    def expand(
        self,
        formula: Formula,
        step: FormulaStep,
        nodes: dict[str, TemplateNode],
        edges: list[Edge],
    ) -> None:
        container = step.parent or formula.name
        for n, target in enumerate(step.waits_for, start=1):
            gate_id = f"{step.id}.gate.{n}"
            nodes[gate_id] = TemplateNode(local_id=gate_id, title=f"Wait for {target}", kind="gate")
            edges.append(Edge(step.id, gate_id, WAITS_FOR))
            edges.append(Edge(gate_id, container, PARENT_CHILD))


DEFAULT_EXPANDERS: tuple[GateExpander, ...] = (WaitsForGateExpander(),)


def cook(formula: Formula, *, expanders: Iterable[GateExpander] = DEFAULT_EXPANDERS) -> TemplateSubgraph:
    """Turn *formula* into a template subgraph in formula-local ids."""
    nodes: dict[str, TemplateNode] = {
        formula.name: TemplateNode(local_id=formula.name, title=formula.title, kind="epic", description=formula.description),
    }
    edges: list[Edge] = []
    for step in formula.steps:
        nodes[step.id] = TemplateNode(local_id=step.id, title=step.title, kind=step.kind, description=step.description)  # type: ignore[arg-type]
        edges.append(Edge(step.id, step.parent or formula.name, PARENT_CHILD))
        edges.extend(Edge(step.id, need, BLOCKS) for need in step.needs)
        edges.extend(Edge(step.id, cond, CONDITIONAL_BLOCKS) for cond in step.conditional_on)

    expanders = tuple(expanders)
    for step in formula.steps:
        for expander in expanders:
            expander.expand(formula, step, nodes, edges)

    subgraph = TemplateSubgraph(name=formula.name, root=formula.name, nodes=nodes, edges=tuple(dict.fromkeys(edges)))
    logger.debug("Cooked formula %s: %d nodes, %d edges", formula.name, len(subgraph.nodes), len(subgraph.edges))
    return subgraph
