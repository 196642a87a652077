"""CLI tests for add-dep, remove-dep, deps, ready and blocked."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from beadwork.cli import cli
from tests.cli.conftest import _extract_id


def _pair(runner: CliRunner) -> tuple[str, str]:
    a = _extract_id(runner.invoke(cli, ["create", "Subject"]).output)
    b = _extract_id(runner.invoke(cli, ["create", "Object"]).output)
    return a, b


class TestAddRemoveDep:
    def test_add_dep(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _pair(runner)
        result = runner.invoke(cli, ["add-dep", a, b])
        assert result.exit_code == 0
        assert f"Added: {a} -[blocks]-> {b}" in result.output
        again = runner.invoke(cli, ["add-dep", a, b, "--json"])
        assert json.loads(again.output) == {"from": a, "to": b, "type": "blocks", "status": "already_exists"}

    def test_add_typed_dep(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _pair(runner)
        runner.invoke(cli, ["add-dep", a, b, "--type", "waits-for"])
        edges = json.loads(runner.invoke(cli, ["deps", a, "--json"]).output)
        assert edges == [{"subject": a, "object": b, "type": "waits-for"}]

    def test_unknown_type_rejected_by_click(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _pair(runner)
        result = runner.invoke(cli, ["add-dep", a, b, "--type", "duplicates"])
        assert result.exit_code == 2

    def test_cycle_rejected(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _pair(runner)
        runner.invoke(cli, ["add-dep", a, b])
        result = runner.invoke(cli, ["add-dep", b, a, "--json"])
        assert result.exit_code == 1
        assert "cycle" in json.loads(result.output)["error"]

    def test_missing_item(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, _ = _pair(runner)
        result = runner.invoke(cli, ["add-dep", a, "test-ghost"])
        assert result.exit_code == 1
        assert "Item not found: test-ghost" in result.output

    def test_remove_dep(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _pair(runner)
        runner.invoke(cli, ["add-dep", a, b])
        assert f"Removed: {a} -> {b}" in runner.invoke(cli, ["remove-dep", a, b]).output
        assert "No dependency" in runner.invoke(cli, ["remove-dep", a, b]).output

    def test_deps_missing_item(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["deps", "test-ghost"])
        assert result.exit_code == 1


class TestReadyBlocked:
    def test_ready_and_blocked(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _pair(runner)
        runner.invoke(cli, ["add-dep", a, b])
        ready = json.loads(runner.invoke(cli, ["ready", "--json"]).output)
        assert [i["id"] for i in ready] == [b]
        blocked = runner.invoke(cli, ["blocked"])
        assert f"{a} [task]" in blocked.output
        assert f"<- {b}" in blocked.output
        assert "1 blocked" in blocked.output

    def test_blocked_through_container(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        gate = _extract_id(runner.invoke(cli, ["create", "Approval", "--kind", "gate"]).output)
        epic = _extract_id(runner.invoke(cli, ["create", "Phase", "--kind", "epic", "--dep", gate]).output)
        child = _extract_id(runner.invoke(cli, ["create", "Work", "--parent", epic]).output)
        blocked = runner.invoke(cli, ["blocked"])
        assert f"{child} [task]" in blocked.output
        assert f"{epic} (container)" in blocked.output
        runner.invoke(cli, ["close", gate])
        ready = runner.invoke(cli, ["ready"])
        assert child in ready.output
        assert epic not in ready.output
