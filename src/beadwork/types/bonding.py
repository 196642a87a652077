"""TypedDicts for bonding results and dry-run projections."""

from __future__ import annotations

from typing import TypedDict


class EdgeDict(TypedDict):
    subject: str
    object: str
    type: str


class BondResultDict(TypedDict):
    policy: str
    head_id: str
    spawned_root_id: str
    entry_steps: list[str]
    exit_steps: list[str]
    targets: list[str]
    created_edges: list[EdgeDict]
    existing_edges: list[EdgeDict]
    warnings: list[str]


class BondProjectionDict(TypedDict):
    policy: str
    head_id: str
    root: str
    entry_steps: list[str]
    exit_steps: list[str]
    targets: list[str]
    edges: list[EdgeDict]
    warnings: list[str]
