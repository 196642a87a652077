"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .beadwork/config.json."""

    prefix: str
    version: int
    default_policy: str


class ItemDict(TypedDict):
    id: str
    title: str
    kind: str
    status: str
    priority: int
    origin: str
    formula: str
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    closed_at: ISOTimestamp | None
    description: str
    blocks: list[str]
    blocked_by: list[str]
    parents: list[str]
    children: list[str]
    is_ready: bool


# DependencyRecord uses "from" as a key at runtime (a Python keyword).
# TypedDict cannot express this with class syntax; we use functional form.
DependencyRecord = TypedDict("DependencyRecord", {"from": str, "to": str, "type": str})


class EventRecord(TypedDict):
    id: int
    item_id: str
    event_type: str
    actor: str
    old_value: str | None
    new_value: str | None
    created_at: str
