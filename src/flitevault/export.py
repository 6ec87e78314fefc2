"""Full-store snapshot export."""

import asyncio
import time
from datetime import date
from pathlib import Path
from typing import Any

import structlog

from flitevault.codec import SnapshotEnvelope, dump_snapshot, new_envelope
from flitevault.config import Settings
from flitevault.config import settings as default_settings
from flitevault.errors import ExportError
from flitevault.store import Actor, SnapshotStore
from flitevault.tables import TABLE_NAMES

log = structlog.get_logger()


async def _fetch(store: SnapshotStore, table: str) -> list[dict[str, Any]]:
    try:
        return await store.fetch_all(table)
    except Exception as e:
        raise ExportError(
            f"Failed to fetch {table}: {getattr(e, 'message', e)}", details={"table": table}
        ) from e


async def export_snapshot(
    store: SnapshotStore,
    actor: Actor | None = None,
    *,
    settings: Settings | None = None,
) -> SnapshotEnvelope:
    """Fetch every row of every registered table into a new envelope.

    Tables are read concurrently and in full; there is no paging window or
    date filter at this level. The first failing read cancels the rest.

    Raises:
        ExportError: If any table cannot be fetched. Nothing is returned in
            that case.
    """
    cfg = settings or default_settings
    start_time = time.time()
    log.info("Exporting snapshot", tables=len(TABLE_NAMES))

    try:
        async with asyncio.TaskGroup() as group:
            tasks = {table: group.create_task(_fetch(store, table)) for table in TABLE_NAMES}
    except ExceptionGroup as eg:
        # The first failure cancels the other fetches; report that one
        raise eg.exceptions[0]
    tables = {table: task.result() for table, task in tasks.items()}

    envelope = new_envelope(
        tables,
        format_version=cfg.format_version,
        produced_by=actor.display_name if actor else "Admin",
    )
    log.info(
        "Snapshot exported",
        rows=sum(len(rows) for rows in tables.values()),
        duration=f"{time.time() - start_time:.2f}s",
    )
    return envelope


async def export_to_file(
    store: SnapshotStore,
    actor: Actor | None = None,
    *,
    directory: Path | None = None,
    day: date | None = None,
    settings: Settings | None = None,
) -> Path:
    """Export and write ``<product>_backup_<YYYY-MM-DD>.json``; returns its path."""
    cfg = settings or default_settings
    envelope = await export_snapshot(store, actor, settings=cfg)
    path = dump_snapshot(envelope, directory or cfg.backup_dir, product=cfg.product_name, day=day)
    log.info("Snapshot written", path=str(path))
    return path
