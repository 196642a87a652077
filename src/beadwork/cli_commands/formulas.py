"""CLI commands for formulas: formulas, cook, bond, bond-items."""

from __future__ import annotations

import json as json_mod
from typing import Any

import click

from beadwork.bonding import VALID_BOND_POLICIES
from beadwork.cli_common import default_policy, fail, formulas_dir, get_db
from beadwork.deps import BLOCKING_DEP_TYPES, BLOCKS
from beadwork.errors import BeadworkError
from beadwork.formulas import Formula, cook, find_formula, list_formulas


def _load(name: str, *, as_json: bool) -> Formula:
    formula = find_formula(formulas_dir(), name)
    if formula is None:
        fail(f"Formula not found: {name}", as_json=as_json)
    return formula


@click.command("formulas")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def formulas_cmd(as_json: bool) -> None:
    """List formulas in .beadwork/formulas/."""
    found = list_formulas(formulas_dir())
    if as_json:
        click.echo(json_mod.dumps([f.to_dict() for f in found], indent=2))
        return
    for f in found:
        click.echo(f"{f.name:<20} {len(f.steps)} steps  {f.title}")
    click.echo(f"\n{len(found)} formulas")


@click.command("cook")
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def cook_cmd(name: str, as_json: bool) -> None:
    """Show the subgraph a formula cooks into, without spawning it."""
    formula = _load(name, as_json=as_json)
    try:
        subgraph = cook(formula)
    except (BeadworkError, ValueError) as e:
        fail(str(e), as_json=as_json)
    if as_json:
        payload = {
            "name": subgraph.name,
            "root": subgraph.root,
            "nodes": [{"id": n.local_id, "title": n.title, "kind": n.kind} for n in subgraph.nodes.values()],
            "edges": [e.to_dict() for e in subgraph.edges],
        }
        click.echo(json_mod.dumps(payload, indent=2))
        return
    click.echo(f"Formula: {formula.title} (root {subgraph.root})")
    for node in subgraph.nodes.values():
        click.echo(f"  [{node.kind}] {node.local_id}: {node.title}")
    for edge in subgraph.edges:
        click.echo(f"  {edge.subject} -[{edge.type}]-> {edge.object}")


@click.command("bond")
@click.argument("head_id")
@click.argument("formula_name")
@click.option("--policy", default=None, type=click.Choice(sorted(VALID_BOND_POLICIES)), help="Attachment policy")
@click.option(
    "--type",
    "attach_type",
    default=None,
    type=click.Choice(sorted(BLOCKING_DEP_TYPES)),
    help="Attachment edge type (default policy only)",
)
@click.option("--dry-run", is_flag=True, help="Show the edges that would be created")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def bond(
    ctx: click.Context,
    head_id: str,
    formula_name: str,
    policy: str | None,
    attach_type: str | None,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Spawn FORMULA_NAME and bond it to HEAD_ID."""
    formula = _load(formula_name, as_json=as_json)
    policy = policy or default_policy()
    options = {
        "policy": policy,
        "explicit_type_set": attach_type is not None,
        "attach_type": attach_type or BLOCKS,
    }
    result: dict[str, Any]
    with get_db() as db:
        try:
            subgraph = cook(formula)
            if dry_run:
                result = dict(db.bond_dry_run(head_id, subgraph, **options).to_dict())
            else:
                result = dict(db.bond_formula(head_id, subgraph, actor=ctx.obj["actor"], **options).to_dict())
        except KeyError as e:
            fail(str(e.args[0]), as_json=as_json)
        except (BeadworkError, ValueError) as e:
            fail(str(e), as_json=as_json)

    if as_json:
        click.echo(json_mod.dumps(result, indent=2))
        return
    for warning in result["warnings"]:
        click.echo(f"Warning: {warning}", err=True)
    if dry_run:
        click.echo(f"Dry run: bond {formula.name} to {head_id} (policy={policy})")
        for e in result["edges"]:
            click.echo(f"  would add {e['subject']} -[{e['type']}]-> {e['object']}")
        return
    click.echo(f"Bonded {result['spawned_root_id']} to {head_id} (policy={policy})")
    for e in result["created_edges"]:
        click.echo(f"  added {e['subject']} -[{e['type']}]-> {e['object']}")
    for e in result["existing_edges"]:
        click.echo(f"  exists {e['subject']} -[{e['type']}]-> {e['object']}")


@click.command("bond-items")
@click.argument("head_id")
@click.argument("other_id")
@click.option("--policy", default=None, type=click.Choice(sorted(VALID_BOND_POLICIES)), help="Attachment policy")
@click.option(
    "--type",
    "attach_type",
    default=None,
    type=click.Choice(sorted(BLOCKING_DEP_TYPES)),
    help="Attachment edge type (default policy only)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def bond_items(
    ctx: click.Context,
    head_id: str,
    other_id: str,
    policy: str | None,
    attach_type: str | None,
    as_json: bool,
) -> None:
    """Bond existing item OTHER_ID to HEAD_ID.

    Under --policy require one side must be a spawned formula root; it is
    bonded to the other side whichever order they are given in.
    """
    policy = policy or default_policy()
    with get_db() as db:
        try:
            result = db.bond_items(
                head_id,
                other_id,
                policy=policy,
                explicit_type_set=attach_type is not None,
                attach_type=attach_type or BLOCKS,
                actor=ctx.obj["actor"],
            )
        except KeyError as e:
            fail(str(e.args[0]), as_json=as_json)
        except (BeadworkError, ValueError) as e:
            fail(str(e), as_json=as_json)

    if as_json:
        click.echo(json_mod.dumps(result.to_dict(), indent=2))
        return
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    click.echo(f"Bonded {result.spawned_root_id} to {result.head_id} (policy={policy})")
    for e in result.created_edges:
        click.echo(f"  added {e.subject} -[{e.type}]-> {e.object}")
    for e in result.existing_edges:
        click.echo(f"  exists {e.subject} -[{e.type}]-> {e.object}")


def register(cli: click.Group) -> None:
    """Register formula commands with the CLI group."""
    cli.add_command(formulas_cmd)
    cli.add_command(cook_cmd)
    cli.add_command(bond)
    cli.add_command(bond_items)
