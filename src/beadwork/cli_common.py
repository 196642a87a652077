"""Shared CLI helpers.

Provides ``get_db()`` and ``fail()`` so that both the main ``cli.py`` and
the ``cli_commands/*.py`` modules can access them without circular imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path
from typing import NoReturn

import click

from beadwork.core import (
    BEADWORK_DIR_NAME,
    DB_FILENAME,
    FORMULAS_DIR_NAME,
    BeadDB,
    find_beadwork_root,
    read_config,
)


def get_db() -> BeadDB:
    """Discover .beadwork/ and return an initialized BeadDB."""
    try:
        beadwork_dir = find_beadwork_root()
    except FileNotFoundError:
        click.echo(f"No {BEADWORK_DIR_NAME}/ found. Run 'beadwork init' first.", err=True)
        sys.exit(1)
    config = read_config(beadwork_dir)
    db = BeadDB(beadwork_dir / DB_FILENAME, prefix=config.get("prefix", "beadwork"))
    db.initialize()
    return db


def formulas_dir() -> Path:
    """The project's .beadwork/formulas/ directory (may not exist)."""
    try:
        return find_beadwork_root() / FORMULAS_DIR_NAME
    except FileNotFoundError:
        click.echo(f"No {BEADWORK_DIR_NAME}/ found. Run 'beadwork init' first.", err=True)
        sys.exit(1)


def default_policy() -> str:
    try:
        return read_config(find_beadwork_root()).get("default_policy", "default")
    except FileNotFoundError:
        return "default"


def fail(message: str, *, as_json: bool) -> NoReturn:
    """Report *message* in the requested output mode and exit 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)
