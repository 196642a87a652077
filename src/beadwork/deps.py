"""Dependency types and their readiness classification.

Every dependency type is declared in exactly one of three groups:

* blocking — the subject is blocked until the object is closed;
* containment — ``parent-child``, subject is a child of object. Not blocking
  by itself, but a blocked container blocks all of its children;
* informational — recorded for navigation only, never affects readiness.

Looking up a type outside these groups raises ``UnclassifiedDependencyType``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from beadwork.errors import UnclassifiedDependencyType
from beadwork.types.bonding import EdgeDict

DepType = Literal[
    "blocks",
    "conditional-blocks",
    "waits-for",
    "parent-child",
    "related",
    "discovered-from",
    "tracks",
]

BLOCKS = "blocks"
CONDITIONAL_BLOCKS = "conditional-blocks"
WAITS_FOR = "waits-for"
PARENT_CHILD = "parent-child"

BLOCKING_DEP_TYPES: frozenset[str] = frozenset({BLOCKS, CONDITIONAL_BLOCKS, WAITS_FOR})
CONTAINMENT_DEP_TYPES: frozenset[str] = frozenset({PARENT_CHILD})
INFORMATIONAL_DEP_TYPES: frozenset[str] = frozenset({"related", "discovered-from", "tracks"})
ALL_DEP_TYPES: frozenset[str] = BLOCKING_DEP_TYPES | CONTAINMENT_DEP_TYPES | INFORMATIONAL_DEP_TYPES

# Types whose edges must never form a cycle.
ACYCLIC_DEP_TYPES: frozenset[str] = BLOCKING_DEP_TYPES | CONTAINMENT_DEP_TYPES


def validate_dep_type(dep_type: str) -> str:
    """Return *dep_type* unchanged, or raise if it has no classification."""
    if dep_type not in ALL_DEP_TYPES:
        raise UnclassifiedDependencyType(dep_type)
    return dep_type


def affects_ready_work(dep_type: str) -> bool:
    """True when edges of this type participate in blocking propagation."""
    return validate_dep_type(dep_type) in BLOCKING_DEP_TYPES


def is_containment(dep_type: str) -> bool:
    return validate_dep_type(dep_type) in CONTAINMENT_DEP_TYPES


def is_informational(dep_type: str) -> bool:
    return validate_dep_type(dep_type) in INFORMATIONAL_DEP_TYPES


@dataclass(frozen=True, order=True)
class Edge:
    """A dependency ``subject -> object``: subject is blocked-by / child-of object."""

    subject: str
    object: str
    type: str = BLOCKS

    def __post_init__(self) -> None:
        validate_dep_type(self.type)

    def to_dict(self) -> EdgeDict:
        return {"subject": self.subject, "object": self.object, "type": self.type}
