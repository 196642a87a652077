"""CLI commands for the dependency graph: add-dep, remove-dep, deps, ready, blocked."""

from __future__ import annotations

import json as json_mod

import click

from beadwork.cli_common import fail, get_db
from beadwork.deps import ALL_DEP_TYPES, BLOCKS
from beadwork.errors import BeadworkError


@click.command("add-dep")
@click.argument("subject_id")
@click.argument("object_id")
@click.option("--type", "dep_type", default=BLOCKS, type=click.Choice(sorted(ALL_DEP_TYPES)), help="Dependency type")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def add_dep(ctx: click.Context, subject_id: str, object_id: str, dep_type: str, as_json: bool) -> None:
    """Add dependency: subject_id depends on object_id."""
    with get_db() as db:
        try:
            added = db.add_dependency(subject_id, object_id, dep_type=dep_type, actor=ctx.obj["actor"])
        except KeyError as e:
            fail(str(e.args[0]), as_json=as_json)
        except (BeadworkError, ValueError) as e:
            fail(str(e), as_json=as_json)
        status = "added" if added else "already_exists"
        if as_json:
            click.echo(json_mod.dumps({"from": subject_id, "to": object_id, "type": dep_type, "status": status}))
        elif added:
            click.echo(f"Added: {subject_id} -[{dep_type}]-> {object_id}")
        else:
            click.echo(f"Already exists: {subject_id} -[{dep_type}]-> {object_id}")


@click.command("remove-dep")
@click.argument("subject_id")
@click.argument("object_id")
@click.option("--type", "dep_type", default=None, type=click.Choice(sorted(ALL_DEP_TYPES)), help="Only this type")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def remove_dep(ctx: click.Context, subject_id: str, object_id: str, dep_type: str | None, as_json: bool) -> None:
    """Remove dependency."""
    with get_db() as db:
        removed = db.remove_dependency(subject_id, object_id, dep_type=dep_type, actor=ctx.obj["actor"])
        status = "removed" if removed else "not_found"
        if as_json:
            click.echo(json_mod.dumps({"from": subject_id, "to": object_id, "status": status}))
        elif removed:
            click.echo(f"Removed: {subject_id} -> {object_id}")
        else:
            click.echo(f"No dependency: {subject_id} -> {object_id}")


@click.command()
@click.argument("item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def deps(item_id: str, as_json: bool) -> None:
    """Show every dependency touching an item."""
    with get_db() as db:
        try:
            edges = db.get_dependencies(item_id)
        except KeyError:
            fail(f"Not found: {item_id}", as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps([e.to_dict() for e in edges], indent=2))
            return
        for e in edges:
            click.echo(f"{e.subject} -[{e.type}]-> {e.object}")
        click.echo(f"\n{len(edges)} dependencies")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def ready(as_json: bool) -> None:
    """Show items ready to work on (no blockers)."""
    with get_db() as db:
        items = db.get_ready()

        if as_json:
            click.echo(json_mod.dumps([i.to_dict() for i in items], indent=2, default=str))
            return

        for item in items:
            origin = f" ({item.formula})" if item.formula else ""
            click.echo(f'P{item.priority} {item.id} [{item.kind}] "{item.title}"{origin}')
        click.echo(f"\n{len(items)} ready")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def blocked(as_json: bool) -> None:
    """Show blocked items."""
    with get_db() as db:
        items = db.get_blocked()

        if as_json:
            click.echo(json_mod.dumps([i.to_dict() for i in items], indent=2, default=str))
            return

        for item in items:
            reasons = db.readiness.blocked_reasons(item.id)
            blockers = ", ".join(reasons.open_blockers + [f"{c} (container)" for c in reasons.blocked_containers])
            click.echo(f'P{item.priority} {item.id} [{item.kind}] "{item.title}" <- {blockers}')
        click.echo(f"\n{len(items)} blocked")


def register(cli: click.Group) -> None:
    """Register graph commands with the CLI group."""
    cli.add_command(add_dep)
    cli.add_command(remove_dep)
    cli.add_command(deps)
    cli.add_command(ready)
    cli.add_command(blocked)
