"""Shared pytest fixtures for beadwork tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from beadwork.core import BEADWORK_DIR_NAME, DB_FILENAME, FORMULAS_DIR_NAME, BeadDB, write_config
from tests._db_factory import RELEASE_FORMULA, write_formula


@pytest.fixture
def db(tmp_path: Path) -> Generator[BeadDB, None, None]:
    """Fresh BeadDB for each test."""
    d = BeadDB(tmp_path / "beadwork.db", prefix="test")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def beadwork_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a beadwork project (.beadwork/ with config, db and one formula).

    Returns the project root (parent of .beadwork/).
    """
    beadwork_dir = tmp_path / BEADWORK_DIR_NAME
    beadwork_dir.mkdir()
    write_config(beadwork_dir, {"prefix": "proj", "version": 1, "default_policy": "default"})
    write_formula(beadwork_dir / FORMULAS_DIR_NAME, "release", RELEASE_FORMULA)

    d = BeadDB(beadwork_dir / DB_FILENAME, prefix="proj")
    d.initialize()
    d.close()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
