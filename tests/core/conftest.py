"""Fixtures for core DB tests."""

from __future__ import annotations

import tomllib

import pytest

from beadwork.core import BeadDB, Item
from beadwork.formulas import cook, parse_formula
from beadwork.subgraph import TemplateSubgraph
from tests._db_factory import RELEASE_FORMULA


@pytest.fixture
def release_subgraph() -> TemplateSubgraph:
    """The release formula (build -> test -> publish), cooked."""
    return cook(parse_formula(tomllib.loads(RELEASE_FORMULA)))


@pytest.fixture
def head(db: BeadDB) -> Item:
    return db.create_item("Ship v2")


def item_count(db: BeadDB) -> int:
    return int(db.conn.execute("SELECT COUNT(*) FROM items").fetchone()[0])


def edge_count(db: BeadDB) -> int:
    return int(db.conn.execute("SELECT COUNT(*) FROM dependencies").fetchone()[0])
