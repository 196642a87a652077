"""CLI for the beadwork work graph.

Convention-based: discovers .beadwork/ by walking up from cwd.

Usage:
    beadwork init                                # Initialize .beadwork/ in cwd
    beadwork create "Ship it" --kind=task        # Create item
    beadwork show <id>                           # Show item details
    beadwork list --status=open                  # List items
    beadwork close <id>                          # Close item
    beadwork reopen <id>                         # Reopen closed item
    beadwork add-dep <subject> <object>          # subject is blocked by object
    beadwork ready                               # Show ready items
    beadwork blocked                             # Show blocked items
    beadwork formulas                            # List formulas
    beadwork cook <formula>                      # Show a cooked formula
    beadwork bond <head> <formula>               # Spawn a formula and bond it
    beadwork dashboard                           # Serve the HTTP API
"""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path

import click

from beadwork import __version__
from beadwork.cli_commands import formulas as formulas_commands
from beadwork.cli_commands import graph as graph_commands
from beadwork.cli_common import fail, get_db
from beadwork.core import (
    BEADWORK_DIR_NAME,
    DB_FILENAME,
    FORMULAS_DIR_NAME,
    BeadDB,
    read_config,
    write_config,
)
from beadwork.validation import sanitize_actor

# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="beadwork")
@click.option("--actor", default="cli", help="Actor identity for audit trail (default: cli)")
@click.pass_context
def cli(ctx: click.Context, actor: str) -> None:
    """Beadwork — formula-driven work graphs."""
    cleaned, err = sanitize_actor(actor)
    if err:
        raise click.BadParameter(err, param_hint="--actor")
    ctx.ensure_object(dict)
    ctx.obj["actor"] = cleaned


@cli.command()
@click.option("--prefix", default=None, help="ID prefix for items (default: directory name)")
def init(prefix: str | None) -> None:
    """Initialize .beadwork/ in the current directory."""
    cwd = Path.cwd()
    beadwork_dir = cwd / BEADWORK_DIR_NAME

    if beadwork_dir.exists():
        click.echo(f"{BEADWORK_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        config = read_config(beadwork_dir)
        with BeadDB(beadwork_dir / DB_FILENAME, prefix=config.get("prefix", "beadwork")) as db:
            db.initialize()
        return

    prefix = prefix or cwd.name
    beadwork_dir.mkdir()
    (beadwork_dir / FORMULAS_DIR_NAME).mkdir()
    write_config(beadwork_dir, {"prefix": prefix, "version": 1, "default_policy": "default"})

    with BeadDB(beadwork_dir / DB_FILENAME, prefix=prefix) as db:
        db.initialize()

    click.echo(f"Initialized {BEADWORK_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix: {prefix}")
    click.echo(f"  Database: {beadwork_dir / DB_FILENAME}")
    click.echo(f"  Formulas: {beadwork_dir / FORMULAS_DIR_NAME}")


@cli.command()
@click.argument("title")
@click.option("--kind", default="task", type=click.Choice(["task", "epic", "gate"]), help="Item kind")
@click.option("--priority", "-p", default=2, type=int, help="Priority 0-4 (0=critical)")
@click.option("--parent", default=None, help="Containing epic ID")
@click.option("--description", "-d", default="", help="Description")
@click.option("--dep", multiple=True, help="Blocked by item IDs (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    kind: str,
    priority: int,
    parent: str | None,
    description: str,
    dep: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create a new item."""
    with get_db() as db:
        try:
            item = db.create_item(
                title,
                kind=kind,
                priority=priority,
                parent_id=parent,
                description=description,
                deps=list(dep) if dep else None,
                actor=ctx.obj["actor"],
            )
        except ValueError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {item.id}: {item.title}")


@cli.command()
@click.argument("item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(item_id: str, as_json: bool) -> None:
    """Show item details."""
    with get_db() as db:
        try:
            item = db.get_item(item_id)
        except KeyError:
            click.echo(f"Not found: {item_id}", err=True)
            sys.exit(1)

        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
            return

        click.echo(f"ID:       {item.id}")
        click.echo(f"Title:    {item.title}")
        click.echo(f"Kind:     {item.kind}")
        click.echo(f"Status:   {item.status}")
        click.echo(f"Priority: P{item.priority}")
        click.echo(f"Origin:   {item.origin}" + (f" ({item.formula})" if item.formula else ""))
        click.echo(f"Created:  {item.created_at}")
        if item.closed_at:
            click.echo(f"Closed:   {item.closed_at}")
        if item.is_ready and not item.is_container:
            click.echo("Ready:    YES (no blockers)")
        if item.blocked_by:
            click.echo(f"Blocked by: {', '.join(item.blocked_by)}")
        if item.blocks:
            click.echo(f"Blocks:   {', '.join(item.blocks)}")
        if item.parents:
            click.echo(f"Parents:  {', '.join(item.parents)}")
        if item.children:
            click.echo(f"Children: {', '.join(item.children)}")
        if item.description:
            click.echo(f"\n--- Description ---\n{item.description}")


@cli.command("list")
@click.option("--status", default=None, help="Filter by status")
@click.option("--kind", default=None, help="Filter by kind")
@click.option("--formula", default=None, help="Filter by source formula")
@click.option("--limit", default=100, type=int, help="Max results (default 100)")
@click.option("--offset", default=0, type=int, help="Skip first N results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_items(
    status: str | None,
    kind: str | None,
    formula: str | None,
    limit: int,
    offset: int,
    as_json: bool,
) -> None:
    """List items with optional filters."""
    with get_db() as db:
        items = db.list_items(status=status, kind=kind, formula=formula, limit=limit, offset=offset)

        if as_json:
            click.echo(json_mod.dumps([i.to_dict() for i in items], indent=2, default=str))
            return

        for item in items:
            click.echo(f'P{item.priority} {item.id} [{item.kind}] {item.status:<6} "{item.title}"')
        click.echo(f"\n{len(items)} items")


@cli.command()
@click.argument("item_ids", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def close(ctx: click.Context, item_ids: tuple[str, ...], as_json: bool) -> None:
    """Close one or more items."""
    closed: list[dict[str, object]] = []
    with get_db() as db:
        for item_id in item_ids:
            try:
                item = db.close_item(item_id, actor=ctx.obj["actor"])
            except KeyError:
                fail(f"Not found: {item_id}", as_json=as_json)
            except ValueError as e:
                fail(str(e), as_json=as_json)
            closed.append(dict(item.to_dict()))
            if not as_json:
                click.echo(f"Closed {item.id}: {item.title}")
        if as_json:
            click.echo(json_mod.dumps(closed, indent=2, default=str))
            return
        ready = db.get_ready()
        if ready:
            click.echo(f"\n{len(ready)} ready")


@cli.command()
@click.argument("item_ids", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def reopen(ctx: click.Context, item_ids: tuple[str, ...], as_json: bool) -> None:
    """Reopen one or more closed items."""
    reopened: list[dict[str, object]] = []
    with get_db() as db:
        for item_id in item_ids:
            try:
                item = db.reopen_item(item_id, actor=ctx.obj["actor"])
            except KeyError:
                fail(f"Not found: {item_id}", as_json=as_json)
            except ValueError as e:
                fail(str(e), as_json=as_json)
            reopened.append(dict(item.to_dict()))
            if not as_json:
                click.echo(f"Reopened {item.id}: {item.title}")
        if as_json:
            click.echo(json_mod.dumps(reopened, indent=2, default=str))


@cli.command()
@click.option("--port", default=8377, type=int, help="Server port (default 8377)")
def dashboard(port: int) -> None:
    """Serve the HTTP JSON API (requires beadwork[dashboard])."""
    try:
        from beadwork.dashboard import main as dashboard_main
    except ImportError:
        click.echo('Dashboard requires extra dependencies. Install with: pip install "beadwork[dashboard]"', err=True)
        sys.exit(1)
    dashboard_main(port=port)


graph_commands.register(cli)
formulas_commands.register(cli)


if __name__ == "__main__":
    cli()
