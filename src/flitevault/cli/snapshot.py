"""Snapshot CLI commands: backup, restore and inspect."""

from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Annotated

import typer

from flitevault.cli.common import (
    console,
    create_table,
    error,
    info,
    print_store_hint,
    progress_bar,
    run_async,
    spinner,
    success,
    warn,
)
from flitevault.codec import dump_snapshot, load_snapshot
from flitevault.config import settings
from flitevault.context import RestoreContext
from flitevault.errors import FliteVaultError, RestoreCancelledError
from flitevault.export import export_snapshot
from flitevault.restore import CONFIRMATION_MESSAGE, RestoreReport, restore_snapshot
from flitevault.store import Actor, SnapshotStore, StoreError, create_store


def open_store() -> AbstractAsyncContextManager[SnapshotStore]:
    """Open the configured target store."""
    return create_store(settings)


async def _resolve_actor(store: SnapshotStore) -> Actor | None:
    try:
        return await store.get_actor()
    except StoreError as e:
        warn(f"Could not resolve the signed-in user ({e.message}).")
        return None


def backup(
    output_dir: Annotated[
        Path | None,
        typer.Option("--output-dir", "-o", help="Directory for the backup file"),
    ] = None,
) -> None:
    """Export every table to <product>_backup_<date>.json."""

    @run_async
    async def _backup() -> None:
        try:
            with spinner() as progress:
                progress.add_task("Exporting snapshot...", total=None)
                async with open_store() as store:
                    actor = await _resolve_actor(store)
                    envelope = await export_snapshot(store, actor, settings=settings)

            path = dump_snapshot(
                envelope, output_dir or settings.backup_dir, product=settings.product_name
            )
        except FliteVaultError as e:
            error(f"Export failed: {e.message}")
            print_store_hint()
            raise typer.Exit(1) from e

        counts = envelope.row_counts()
        success(f"Backup created: {path}")
        info(f"Tables: {len(counts)}, Rows: {sum(counts.values())}")

    _backup()


def restore(
    backup_file: Annotated[Path, typer.Argument(help="Snapshot file to restore")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Restore a snapshot into the configured store."""
    if not backup_file.exists():
        error(f"Backup file not found: {backup_file}")
        raise typer.Exit(1)
    if backup_file.suffix.lower() != ".json":
        error(f"Snapshot files must be .json: {backup_file.name}")
        raise typer.Exit(1)

    if not yes and not typer.confirm(CONFIRMATION_MESSAGE):
        info("Cancelled")
        return

    @run_async
    async def _restore() -> RestoreReport:
        with progress_bar() as progress:
            task = progress.add_task("Restoring...", total=100)
            context = RestoreContext(
                on_log=lambda line: console.print(line, style="dim", markup=False),
                on_progress=lambda value: progress.update(task, completed=value),
            )
            async with open_store() as store:
                actor = await _resolve_actor(store)
                if actor is None:
                    warn("All staff logins will be disconnected.")
                return await restore_snapshot(
                    backup_file,
                    store=store,
                    actor=actor,
                    context=context,
                    on_complete=lambda: info("Reload open portal sessions to see restored data."),
                    settings=settings,
                )

    try:
        report = _restore()
    except RestoreCancelledError:
        info("Cancelled")
        return
    except FliteVaultError as e:
        error(f"Restore failed: {e.message}")
        raise typer.Exit(1) from e

    success("Restore complete!")
    info(f"Restored {report.total_rows} rows in {report.duration_seconds:.1f}s")
    if report.skipped_tables:
        warn(f"Skipped (permission denied): {', '.join(report.skipped_tables)}")
    if report.collisions:
        warn(f"{len(report.collisions)} ambiguous identity match(es); see log above")


def inspect(
    backup_file: Annotated[Path, typer.Argument(help="Snapshot file to inspect")],
) -> None:
    """Show what a snapshot file contains without touching the store."""
    try:
        envelope = load_snapshot(backup_file)
    except FileNotFoundError as e:
        error(f"Backup file not found: {backup_file}")
        raise typer.Exit(1) from e
    except FliteVaultError as e:
        error(e.message)
        raise typer.Exit(1) from e

    console.print(f"Format version: {envelope.format_version}")
    console.print(f"Created at:     {envelope.created_at or '-'}")
    console.print(f"Produced by:    {envelope.produced_by or '-'}")

    table = create_table("Tables", "Table", "Rows")
    for name, count in envelope.row_counts().items():
        table.add_row(name, str(count))
    console.print(table)

    if envelope.ignored_tables:
        warn(f"Ignored unknown tables: {', '.join(envelope.ignored_tables)}")
