"""nx: command line interface for the nexus import engine.

Usage:
    nx import export.zip              # Import an archive into the store
    nx import export.zip --dry-run    # Parse only, write nothing
    nx revert                         # Undo the most recent import
    nx manifest                       # Show what `nx revert` would undo
    nx schemas                        # List stored type schemas
"""

from __future__ import annotations

import asyncio
import difflib
import json
import sys
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as NEXUS_VERSION


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


def output(data, as_json: bool = False):
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


# ─────────────────────────────────────────────────────────────────────────────
# Error Handling
# ─────────────────────────────────────────────────────────────────────────────


def _handle_error(
    ctx: click.Context,
    error: Exception,
    fallback_message: str | None = None,
    exit_code: int = 1,
) -> NoReturn:
    """Report an error as text or JSON (--json-errors) and exit."""
    from .config import ConfigurationError
    from .errors import ErrorCode, NexusError, format_error_json

    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, NexusError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
            suggestion = error.details.get("suggestion") if error.details else None
            if suggestion:
                click.echo(f"Hint: {suggestion}", err=True)
    else:
        message = str(error) or fallback_message or "Unknown error"
        code = ErrorCode.CONFIGURATION_ERROR if isinstance(error, ConfigurationError) else "INTERNAL_ERROR"
        if json_errors:
            click.echo(format_error_json(code, message), err=True)
        else:
            click.echo(f"Error: {message}", err=True)

    sys.exit(exit_code)


# Most specific first: MissingParameter and NoSuchOption are UsageErrors,
# and MissingParameter is also a BadParameter.
_CLICK_ERROR_CODES: tuple[tuple[type[ClickException], str], ...] = (
    (click.MissingParameter, "MISSING_ARGUMENT"),
    (click.NoSuchOption, "UNKNOWN_OPTION"),
    (click.BadParameter, "INVALID_ARGUMENT"),
    (UsageError, "USAGE_ERROR"),
)


def get_error_code_for_exception(exc: Exception) -> str:
    """Map a click exception to the code reported under --json-errors."""
    for exc_type, code in _CLICK_ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return "CLI_ERROR" if isinstance(exc, ClickException) else "UNKNOWN_ERROR"


def _echo_click_error(exc: ClickException) -> NoReturn:
    from .errors import format_error_json

    click.echo(format_error_json(get_error_code_for_exception(exc), exc.format_message()), err=True)
    raise SystemExit(1)


class JsonErrorGroup(click.Group):
    """Command group for nx.

    Mistyped commands get a "Did you mean" hint. With --json-errors (a group
    option, so it goes before the command name) usage errors are printed as
    JSON, including those raised while parsing a subcommand's arguments.
    """

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except UsageError as e:
            name = args[0] if args else ""
            matches = difflib.get_close_matches(name, self.list_commands(ctx), n=1, cutoff=0.6) if name else []
            if matches:
                raise UsageError(f"No such command '{name}'. Did you mean '{matches[0]}'?", ctx) from e
            raise

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except ClickException as e:
            if ctx.params.get("json_errors"):
                _echo_click_error(e)
            raise

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        argv = list(args) if args is not None else sys.argv[1:]
        if not argv or argv[0] != "--json-errors":
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        # Group-level parse errors happen before invoke() can see the flag
        try:
            return super().main(argv, prog_name, complete_var, standalone_mode=False, **extra)
        except ClickException as e:
            _echo_click_error(e)


# ─────────────────────────────────────────────────────────────────────────────
# Main Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=NEXUS_VERSION, prog_name="nx")
@click.option(
    "--store",
    "store_root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Knowledge store directory (default: NEXUS_STORE_ROOT or .nexusconfig)",
)
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="NEXUS_QUIET",
    help="Suppress progress and warnings, show only errors and results",
)
@click.pass_context
def cli(ctx: click.Context, store_root: Path | None, json_errors: bool, quiet: bool):
    """nx: import note exports into a nexus knowledge store.

    \b
    Quick start:
      nx import export.zip             # Import markdown/html + assets
      nx import export.zip --dry-run   # See what would be imported
      nx revert                        # Undo the last import
    """
    from ._logging import set_quiet_mode

    ctx.ensure_object(dict)
    ctx.obj["store_root"] = store_root
    ctx.obj["json_errors"] = json_errors
    ctx.obj["quiet"] = quiet

    if quiet:
        set_quiet_mode(True)


def _open_store(ctx: click.Context):
    from .config import get_store_root
    from .store import FileStore

    root = ctx.obj.get("store_root") if ctx.obj else None
    return FileStore(root or get_store_root())


def _progress_printer(ctx: click.Context):
    if ctx.obj.get("quiet"):
        return None

    def on_progress(status: str, current: int, total: int) -> None:
        click.echo(status, err=True)

    return on_progress


def _format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


# ─────────────────────────────────────────────────────────────────────────────
# Import Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command("import")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--overwrite", is_flag=True, help="Import files whose title already exists")
@click.option("--default-type", help="Type for documents without a `type` key")
@click.option("--seed", type=int, help="Seed ids, asset names and colours (reproducible runs)")
@click.option("--dry-run", is_flag=True, help="Parse the archive without writing anything")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def import_cmd(
    ctx: click.Context,
    archive: Path,
    overwrite: bool,
    default_type: str | None,
    seed: int | None,
    dry_run: bool,
    as_json: bool,
):
    """Import a ZIP export of markdown/html notes and their assets.

    Files whose title already exists in the store are skipped unless
    --overwrite is given. The run can be undone with `nx revert`.

    \b
    Examples:
      nx import notion-export.zip
      nx import notes.zip --default-type Meeting --overwrite
      nx import notes.zip --dry-run --json
    """
    from .config import get_default_object_type
    from .importer import ImportTransaction

    try:
        store = None if dry_run else _open_store(ctx)
        transaction = ImportTransaction(
            store=store,
            on_progress=_progress_printer(ctx),
            existing_titles=() if dry_run else None,
            overwrite=overwrite,
            default_type=default_type or get_default_object_type(),
            seed=seed,
        )
        result = run_async(transaction.run(archive))
    except Exception as e:
        _handle_error(ctx, e, fallback_message="Import failed.")

    if as_json:
        payload = result.model_dump(mode="json", by_alias=True, exclude={"assets", "objects"})
        payload["assets"] = {name: len(data) for name, data in result.assets.items()}
        if dry_run:
            payload["objects"] = [obj.model_dump(mode="json") for obj in result.objects]
        output(payload, as_json=True)
        return

    if dry_run:
        click.echo(f"Dry run: {len(result.objects)} objects, {len(result.assets)} assets would be imported")
        for obj in result.objects:
            click.echo(f"  {obj.title} [{obj.type}]")
    else:
        click.echo(f"Imported {len(result.created_object_ids)} objects")
        if result.created_types:
            click.echo(f"Created types: {', '.join(result.created_types)}")

    click.echo(
        f"Processed: {result.total_processed}  Failed: {result.failed_count}  Skipped: {result.skipped_count}"
    )
    for failure in result.failures:
        click.echo(f"  Failed ({failure.phase}): {failure.path}: {failure.message}", err=True)


# ─────────────────────────────────────────────────────────────────────────────
# Revert Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def revert(ctx: click.Context, yes: bool, as_json: bool):
    """Undo the most recent import.

    Deletes every object, type and asset the last import created.
    """
    from .errors import NoManifestError
    from .importer import revert_last_import

    try:
        store = _open_store(ctx)
        manifest = run_async(store.load_manifest())
        if manifest is None:
            raise NoManifestError()
    except Exception as e:
        _handle_error(ctx, e)

    if not yes:
        click.echo(
            f"Last import ({_format_timestamp(manifest.timestamp)}) created "
            f"{len(manifest.created_object_ids)} objects, {len(manifest.created_types)} types "
            f"and {len(manifest.created_assets)} assets."
        )
        if not click.confirm("Delete them?", default=False):
            click.echo("Aborted.")
            return

    try:
        result = run_async(revert_last_import(store, on_progress=_progress_printer(ctx)))
    except Exception as e:
        _handle_error(ctx, e, fallback_message="Revert failed.")

    if as_json:
        output(result.model_dump(mode="json"), as_json=True)
    else:
        click.echo(
            f"Reverted: {result.deleted_objects} objects, {result.deleted_types} types, "
            f"{result.deleted_assets} assets"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Inspection Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def manifest(ctx: click.Context, as_json: bool):
    """Show the record of the last import (what `nx revert` would undo)."""
    try:
        store = _open_store(ctx)
        last_import = run_async(store.load_manifest())
    except Exception as e:
        _handle_error(ctx, e)

    if as_json:
        output(last_import.model_dump(mode="json", by_alias=True) if last_import else None, as_json=True)
        return

    if last_import is None:
        click.echo("No import to revert.")
        return

    click.echo(f"Imported at: {_format_timestamp(last_import.timestamp)}")
    click.echo(f"Objects: {len(last_import.created_object_ids)}")
    click.echo(f"Types: {', '.join(last_import.created_types) or '-'}")
    click.echo(f"Assets: {len(last_import.created_assets)}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def schemas(ctx: click.Context, as_json: bool):
    """List the type schemas in the store."""
    try:
        store = _open_store(ctx)
        stored = run_async(store.list_schemas())
    except Exception as e:
        _handle_error(ctx, e)

    if as_json:
        output([schema.model_dump(mode="json") for schema in stored], as_json=True)
        return

    if not stored:
        click.echo("No schemas.")
        return

    for schema in stored:
        click.echo(f"{schema.type} ({schema.color})")
        for prop in schema.properties:
            click.echo(f"  {prop.key}: {prop.type}")


def main():
    """Entry point for nx CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()
