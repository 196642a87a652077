"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from beadwork.cli import cli
from beadwork.core import BEADWORK_DIR_NAME, FORMULAS_DIR_NAME
from tests._db_factory import RELEASE_FORMULA, write_formula


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a beadwork project in tmp_path and return (runner, project_root).

    The project ships the ``release`` formula.
    """
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--prefix", "test"])
    assert result.exit_code == 0
    write_formula(tmp_path / BEADWORK_DIR_NAME / FORMULAS_DIR_NAME, "release", RELEASE_FORMULA)
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


def _extract_id(create_output: str) -> str:
    """Extract item ID from 'Created test-abc123: Title' output."""
    return create_output.split(":")[0].replace("Created ", "").strip()
