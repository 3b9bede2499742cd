"""CLI for the camellia store.

The database file is taken from ``--db``, then ``CAMELLIA_DB_PATH``, then the
path file, then ``./camellia.db`` (see ``camellia.config``).

Usage:
    camellia get sensors/temperature         # Print a value, or a subtree as JSON
    camellia get -e sensors                  # Subtree in the extended JSON format
    camellia set sensors/temperature 21.5    # Store a value
    camellia set -f sensors 1                # Store a value, replacing conflicts
    camellia delete sensors                  # Delete an entry and its subtree
    camellia import tree.json                # Import values JSON (- for stdin)
    camellia merge -e tree.json              # Merge extended JSON, keep existing entries
    camellia migrate                         # Create or upgrade the schema
    camellia wipe --yes                      # Delete everything
"""

from __future__ import annotations

from typing import IO

import click

from camellia import __version__, json_bridge
from camellia.cli_common import get_db, handle_errors
from camellia.config import resolve_log_dir
from camellia.exceptions import PathIsNotAValueError
from camellia.logging import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="camellia")
@click.option("--db", "db_path", default=None, type=click.Path(dir_okay=False), help="Database file")
@click.pass_context
def cli(ctx: click.Context, db_path: str | None) -> None:
    """Camellia: hierarchical key-value store on SQLite."""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path
    log_dir = resolve_log_dir()
    if log_dir is not None:
        setup_logging(log_dir)


@cli.command()
@click.argument("path", default="")
@click.option("--extended", "-e", is_flag=True, help="Print the extended JSON format")
@click.option("--value-only", "-v", is_flag=True, help="Fail unless PATH holds a value")
@click.pass_context
def get(ctx: click.Context, path: str, extended: bool, value_only: bool) -> None:
    """Print the value at PATH, or its subtree as JSON."""
    with handle_errors(path), get_db(ctx) as db:
        entry = db.get_entry(path)
        if extended:
            click.echo(json_bridge.dumps(json_bridge.entry_to_extended(entry)), nl=False)
        elif entry.is_value:
            click.echo(entry.value)
        elif value_only:
            raise PathIsNotAValueError(entry.path)
        else:
            click.echo(json_bridge.dumps(json_bridge.entry_to_values(entry)), nl=False)


@cli.command("set")
@click.argument("path")
@click.argument("value")
@click.option("--force", "-f", is_flag=True, help="Replace conflicting entries")
@click.pass_context
def set_(ctx: click.Context, path: str, value: str, force: bool) -> None:
    """Store VALUE at PATH."""
    with handle_errors(path), get_db(ctx) as db:
        if force:
            db.force(path, value)
        else:
            db.set(path, value)


@cli.command()
@click.argument("path")
@click.pass_context
def delete(ctx: click.Context, path: str) -> None:
    """Delete PATH and everything below it."""
    with handle_errors(path), get_db(ctx) as db:
        removed = db.delete(path)
        click.echo(f"Deleted {removed} entries")


def _load(ctx: click.Context, source: IO[str], *, extended: bool, only_merge: bool) -> None:
    with handle_errors(getattr(source, "name", None)), get_db(ctx) as db:
        text = source.read()
        if extended:
            written = db.set_entries_from_json(text, only_merge=only_merge)
        else:
            written = db.set_values_from_json(text, only_merge=only_merge)
        click.echo(f"Imported {written} entries")


@cli.command("import")
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--extended", "-e", is_flag=True, help="SOURCE uses the extended JSON format")
@click.pass_context
def import_(ctx: click.Context, source: IO[str], extended: bool) -> None:
    """Import JSON from SOURCE, replacing conflicting entries."""
    _load(ctx, source, extended=extended, only_merge=False)


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--extended", "-e", is_flag=True, help="SOURCE uses the extended JSON format")
@click.pass_context
def merge(ctx: click.Context, source: IO[str], extended: bool) -> None:
    """Import JSON from SOURCE, keeping entries that already exist."""
    _load(ctx, source, extended=extended, only_merge=True)


@cli.command()
@click.pass_context
def migrate(ctx: click.Context) -> None:
    """Create the schema, or upgrade an older database."""
    with handle_errors(), get_db(ctx, initialize=False) as db:
        before = db.get_schema_version()
        if db.migrate():
            click.echo(f"Migrated {db.db_path} from v{before} to v{db.supported_schema_version}")
        else:
            click.echo(f"{db.db_path} is already at v{db.supported_schema_version}")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def wipe(ctx: click.Context, yes: bool) -> None:
    """Delete every entry."""
    if not yes:
        click.confirm("Delete every entry?", abort=True)
    with handle_errors(), get_db(ctx) as db:
        removed = db.wipe()
        click.echo(f"Wiped {removed} entries")


if __name__ == "__main__":
    cli()
