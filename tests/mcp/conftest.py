"""Fixtures for MCP server tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from beadwork.core import BEADWORK_DIR_NAME, DB_FILENAME, FORMULAS_DIR_NAME, BeadDB, write_config
from tests._db_factory import RELEASE_FORMULA, write_formula


@pytest.fixture
def mcp_db(tmp_path: Path) -> Generator[BeadDB, None, None]:
    """Set up a BeadDB with the release formula and patch the MCP module globals."""
    beadwork_dir = tmp_path / BEADWORK_DIR_NAME
    beadwork_dir.mkdir()
    write_config(beadwork_dir, {"prefix": "mcp", "version": 1, "default_policy": "default"})
    write_formula(beadwork_dir / FORMULAS_DIR_NAME, "release", RELEASE_FORMULA)

    d = BeadDB(beadwork_dir / DB_FILENAME, prefix="mcp")
    d.initialize()

    import beadwork.mcp_server as mcp_mod

    original_db = mcp_mod.db
    original_dir = mcp_mod._beadwork_dir
    mcp_mod.db = d
    mcp_mod._beadwork_dir = beadwork_dir

    yield d

    mcp_mod.db = original_db
    mcp_mod._beadwork_dir = original_dir
    d.close()
