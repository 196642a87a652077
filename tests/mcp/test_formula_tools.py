"""MCP formula, bond and dry-run tools."""

from __future__ import annotations

from beadwork.core import CONFIG_FILENAME, BeadDB
from beadwork.mcp_server import call_tool
from tests.mcp._helpers import _call, _parse


class TestFormulas:
    async def test_list(self, mcp_db: BeadDB) -> None:
        data = await _call("list_formulas")
        assert [f["name"] for f in data] == ["release"]

    async def test_cook(self, mcp_db: BeadDB) -> None:
        data = await _call("cook_formula", formula="release")
        assert data["root"] == "release"
        assert {n["id"] for n in data["nodes"]} == {"release", "build", "test", "publish"}

    async def test_cook_missing(self, mcp_db: BeadDB) -> None:
        data = await _call("cook_formula", formula="nope")
        assert data["code"] == "not_found"

    async def test_cook_requires_project_dir(self, mcp_db: BeadDB) -> None:
        import beadwork.mcp_server as mcp_mod

        saved = mcp_mod._beadwork_dir
        mcp_mod._beadwork_dir = None
        try:
            data = await _call("cook_formula", formula="release")
        finally:
            mcp_mod._beadwork_dir = saved
        assert data["code"] == "not_initialized"


class TestBond:
    async def test_bond_default(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        data = await _call("bond", head_id=head.id, formula="release")
        assert data["policy"] == "default"
        assert data["created_edges"] == [{"subject": data["spawned_root_id"], "object": head.id, "type": "blocks"}]
        assert mcp_db.get_item_events(head.id)[0]["actor"] == "mcp"

    async def test_bond_require(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        data = await _call("bond", head_id=head.id, formula="release", policy="require", actor="planner")
        assert len(data["entry_steps"]) == 1
        assert len(data["exit_steps"]) == 1
        assert sorted(e["object"] for e in data["created_edges"]) == sorted(data["targets"])
        ready = await _call("get_ready")
        assert [i["title"] for i in ready] == ["Build artifacts"]

    async def test_bond_policy_from_config(self, mcp_db: BeadDB) -> None:
        import beadwork.mcp_server as mcp_mod

        assert mcp_mod._beadwork_dir is not None
        (mcp_mod._beadwork_dir / CONFIG_FILENAME).write_text('{"prefix": "mcp", "default_policy": "require"}')
        head = mcp_db.create_item("Ship v2")
        data = await _call("bond", head_id=head.id, formula="release")
        assert data["policy"] == "require"

    async def test_type_override_warning(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        data = await _call("bond", head_id=head.id, formula="release", policy="require", type="waits-for")
        assert len(data["warnings"]) == 1

    async def test_invalid_policy_for_operands(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        root = (await _call("bond", head_id=head.id, formula="release"))["spawned_root_id"]
        data = await _call("bond", head_id=root, formula="release", policy="require")
        assert data["code"] == "invalid_policy"

    async def test_unknown_policy(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        data = await _call("bond", head_id=head.id, formula="release", policy="strict")
        assert data["code"] == "validation_error"

    async def test_missing_head(self, mcp_db: BeadDB) -> None:
        data = await _call("bond", head_id="mcp-ghost", formula="release")
        assert data["code"] == "not_found"
        assert mcp_db.list_items() == []

    async def test_dry_run(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        data = _parse(await call_tool("bond_dry_run", {"head_id": head.id, "formula": "release", "policy": "require"}))
        assert data["edges"] == [
            {"subject": head.id, "object": "build", "type": "blocks"},
            {"subject": head.id, "object": "publish", "type": "blocks"},
        ]
        assert len(mcp_db.list_items()) == 1

    async def test_bond_missing_formula(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        data = await _call("bond", head_id=head.id, formula="nope")
        assert data["code"] == "not_found"
        assert len(mcp_db.list_items()) == 1

    async def test_dry_run_rejects_non_string_formula(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        data = await _call("bond_dry_run", head_id=head.id, formula=7)
        assert data["code"] == "validation_error"


class TestBondItems:
    async def test_default_between_existing_items(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        other = mcp_db.create_item("Write docs")
        data = await _call("bond_items", head_id=head.id, other_id=other.id)
        assert data["created_edges"] == [{"subject": other.id, "object": head.id, "type": "blocks"}]
        assert mcp_db.is_blocked(other.id)

    async def test_require_with_spawned_side_given_first(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        spawned = mcp_db.create_item("Placeholder")
        root = (await _call("bond", head_id=spawned.id, formula="release"))["spawned_root_id"]
        data = await _call("bond_items", head_id=root, other_id=head.id, policy="require")
        assert data["head_id"] == head.id
        assert data["spawned_root_id"] == root
        assert len(data["created_edges"]) == 2

    async def test_require_between_protos(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        other = mcp_db.create_item("Write docs")
        data = await _call("bond_items", head_id=head.id, other_id=other.id, policy="require")
        assert data["code"] == "invalid_policy"
        assert mcp_db.get_all_dependencies() == []

    async def test_missing_other(self, mcp_db: BeadDB) -> None:
        head = mcp_db.create_item("Ship v2")
        data = await _call("bond_items", head_id=head.id, other_id="mcp-ghost")
        assert data["code"] == "not_found"
