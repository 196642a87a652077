"""CLI tests for init, create, show, list, close and reopen."""

from __future__ import annotations

import json
import os
from pathlib import Path

from click.testing import CliRunner

from beadwork.cli import cli
from beadwork.core import BEADWORK_DIR_NAME, BeadDB, read_config
from tests.cli.conftest import _extract_id


class TestInit:
    def test_init_creates_layout(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        original = os.getcwd()
        try:
            os.chdir(tmp_path)
            result = cli_runner.invoke(cli, ["init", "--prefix", "demo"])
        finally:
            os.chdir(original)
        assert result.exit_code == 0
        assert "Prefix: demo" in result.output
        beadwork_dir = tmp_path / BEADWORK_DIR_NAME
        assert (beadwork_dir / "beadwork.db").is_file()
        assert (beadwork_dir / "formulas").is_dir()
        assert read_config(beadwork_dir)["default_policy"] == "default"

    def test_init_twice(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert "already exists" in result.output

    def test_commands_need_a_project(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        original = os.getcwd()
        try:
            os.chdir(tmp_path)
            result = cli_runner.invoke(cli, ["list"])
        finally:
            os.chdir(original)
        assert result.exit_code == 1
        assert "beadwork init" in result.output


class TestCreateShow:
    def test_create_and_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Write docs", "-p", "1", "-d", "All of them"])
        assert result.exit_code == 0
        item_id = _extract_id(result.output)
        assert item_id.startswith("test-")
        shown = runner.invoke(cli, ["show", item_id])
        assert shown.exit_code == 0
        assert "Title:    Write docs" in shown.output
        assert "Priority: P1" in shown.output
        assert "Ready:    YES" in shown.output
        assert "All of them" in shown.output

    def test_create_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Epic", "--kind", "epic", "--json"])
        data = json.loads(result.output)
        assert data["kind"] == "epic"
        assert data["origin"] == "proto"

    def test_create_with_parent_and_dep(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        epic = _extract_id(runner.invoke(cli, ["create", "Epic", "--kind", "epic"]).output)
        blocker = _extract_id(runner.invoke(cli, ["create", "Blocker"]).output)
        child = _extract_id(runner.invoke(cli, ["create", "Child", "--parent", epic, "--dep", blocker]).output)
        shown = runner.invoke(cli, ["show", child, "--json"])
        data = json.loads(shown.output)
        assert data["parents"] == [epic]
        assert data["blocked_by"] == [blocker]

    def test_create_invalid_parent(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Orphan", "--parent", "test-missing", "--json"])
        assert result.exit_code == 1
        assert "not found" in json.loads(result.output)["error"]

    def test_show_missing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["show", "test-nope"])
        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_bad_actor(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["--actor", "bad\nactor", "create", "x"])
        assert result.exit_code != 0


class TestListCloseReopen:
    def test_list(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["create", "One"])
        runner.invoke(cli, ["create", "Two", "--kind", "epic"])
        result = runner.invoke(cli, ["list"])
        assert "2 items" in result.output
        epics = json.loads(runner.invoke(cli, ["list", "--kind", "epic", "--json"]).output)
        assert [e["title"] for e in epics] == ["Two"]

    def test_close_and_reopen(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        blocker = _extract_id(runner.invoke(cli, ["create", "Blocker"]).output)
        runner.invoke(cli, ["create", "Blocked", "--dep", blocker])
        result = runner.invoke(cli, ["close", blocker])
        assert result.exit_code == 0
        assert f"Closed {blocker}" in result.output
        assert "1 ready" in result.output
        again = runner.invoke(cli, ["close", blocker])
        assert again.exit_code == 1
        assert "already closed" in again.output
        reopened = runner.invoke(cli, ["reopen", blocker, "--json"])
        assert json.loads(reopened.output)[0]["status"] == "open"

    def test_close_missing_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["close", "test-nope", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output) == {"error": "Not found: test-nope"}

    def test_close_records_actor(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, project = cli_in_project
        item = _extract_id(runner.invoke(cli, ["create", "Audited"]).output)
        runner.invoke(cli, ["--actor", "release-bot", "close", item])
        with BeadDB.from_project(project) as db:
            assert db.get_item_events(item)[0]["actor"] == "release-bot"
