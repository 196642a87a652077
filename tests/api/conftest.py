"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

import beadwork.dashboard as dash_module
from beadwork.core import BEADWORK_DIR_NAME, DB_FILENAME, FORMULAS_DIR_NAME, BeadDB, write_config
from beadwork.dashboard import create_app
from tests._db_factory import RELEASE_FORMULA, write_formula


@pytest.fixture
def api_db(tmp_path: Path) -> BeadDB:
    """BeadDB inside a .beadwork/ project that ships the release formula."""
    beadwork_dir = tmp_path / BEADWORK_DIR_NAME
    beadwork_dir.mkdir()
    write_config(beadwork_dir, {"prefix": "api", "version": 1, "default_policy": "default"})
    write_formula(beadwork_dir / FORMULAS_DIR_NAME, "release", RELEASE_FORMULA)
    d = BeadDB(beadwork_dir / DB_FILENAME, prefix="api", check_same_thread=False)
    d.initialize()
    return d


@pytest.fixture
async def client(api_db: BeadDB) -> AsyncIterator[AsyncClient]:
    """Test client backed by a single-project DB."""
    dash_module._db = api_db
    dash_module._beadwork_dir = api_db.db_path.parent
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    dash_module._db = None
    dash_module._beadwork_dir = None
    api_db.close()
