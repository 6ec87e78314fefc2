"""Snapshot restore orchestration.

Runs the restore plan against the target store: decode, normalize,
reconcile identities, then upsert table by table in dependency order.
There is no rollback; batches written before a fatal error stay written and
the restore log shows the last table reached.
"""

import inspect
import time
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from flitevault.codec import SnapshotEnvelope, decode_snapshot, load_snapshot
from flitevault.config import Settings
from flitevault.config import settings as default_settings
from flitevault.context import RestoreContext
from flitevault.errors import (
    PermissionDeniedError,
    RestoreCancelledError,
    RestoreError,
    SchemaMismatchError,
    TableRestoreError,
)
from flitevault.normalize import normalize_envelope
from flitevault.plan import DEFAULT_PLAN, RestorePlan, StepContext
from flitevault.reconcile import AmbiguousMatch, reconcile
from flitevault.sanitize import sanitize
from flitevault.store import Actor, SnapshotStore, StoreError
from flitevault.tables import get_table

log = structlog.get_logger()

Row = dict[str, Any]
SnapshotSource = Path | str | bytes | SnapshotEnvelope

CONFIRMATION_MESSAGE = (
    "WARNING: You are about to restore data from a backup.\n\n"
    "- Matching IDs will be overwritten.\n"
    "- Staff logins will be disconnected to maintain integrity.\n\n"
    "Continue?"
)


@dataclass
class RestoreReport:
    """Result of a completed restore."""

    log: list[str]
    progress: int
    rows_written: dict[str, int] = field(default_factory=dict)
    skipped_tables: list[str] = field(default_factory=list)
    id_map: dict[str, str] = field(default_factory=dict)
    collisions: list[AmbiguousMatch] = field(default_factory=list)
    duration_seconds: float = 0.0
    reload_required: bool = True

    @property
    def total_rows(self) -> int:
        return sum(self.rows_written.values())


def chunked(rows: Sequence[Row], size: int) -> Iterator[list[Row]]:
    """Split ``rows`` into consecutive batches of at most ``size``."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(rows), size):
        yield list(rows[start : start + size])


def classify_store_error(table: str, error: StoreError) -> RestoreError | None:
    """Map a failed batch to the fatal error to raise, or None to skip the table."""
    if error.is_permission_denied:
        if get_table(table).is_reference:
            return None
        return PermissionDeniedError(table)
    if error.is_schema_mismatch:
        return SchemaMismatchError(table, error.message)
    return TableRestoreError(table, error.message)


async def _write_table(
    store: SnapshotStore,
    table: str,
    rows: list[Row],
    context: RestoreContext,
    chunk_size: int,
) -> tuple[int, bool]:
    """Write one table; returns (rows written, skipped)."""
    context.log(f"Restoring {len(rows)} records to '{table}'...", table=table, rows=len(rows))
    written = 0
    for batch in chunked(rows, chunk_size):
        try:
            await store.upsert(table, batch)
        except StoreError as e:
            failure = classify_store_error(table, e)
            if failure is None:
                context.warn(
                    f"Permission denied for '{table}'. Skipping (system table).", table=table
                )
                return written, True
            raise failure from e
        written += len(batch)
    return written, False


def _load(source: SnapshotSource) -> SnapshotEnvelope:
    if isinstance(source, SnapshotEnvelope):
        return source
    if isinstance(source, Path):
        return load_snapshot(source)
    return decode_snapshot(source)


async def restore_snapshot(
    source: SnapshotSource,
    *,
    store: SnapshotStore,
    actor: Actor | None = None,
    confirm: Callable[[str], bool] | None = None,
    on_complete: Callable[[], Awaitable[None] | None] | None = None,
    context: RestoreContext | None = None,
    plan: RestorePlan = DEFAULT_PLAN,
    settings: Settings | None = None,
) -> RestoreReport:
    """Restore a snapshot into ``store``.

    Args:
        source: Snapshot file path, raw JSON text/bytes, or a decoded envelope.
        store: Target store.
        actor: Person running the restore; their own staff row keeps its login.
        confirm: Called with CONFIRMATION_MESSAGE before anything is read or
            written; a falsy answer cancels the restore.
        on_complete: Called after a successful restore so cached views can
            reload. May be sync or async.
        context: Log/progress sink; a fresh one is created when omitted.
        plan: Restore plan (defaults to DEFAULT_PLAN).
        settings: Settings override.

    Returns:
        RestoreReport with the log and per-table row counts.

    Raises:
        RestoreCancelledError: If ``confirm`` declines.
        SnapshotFormatError: If the snapshot cannot be decoded.
        RestoreError: On a fatal table failure; earlier tables stay written.
        StoreError: If a reconciliation lookup fails.
    """
    cfg = settings or default_settings
    if confirm is not None and not confirm(CONFIRMATION_MESSAGE):
        raise RestoreCancelledError("Restore cancelled")

    context = context or RestoreContext()
    start_time = time.time()
    rows_written: dict[str, int] = {}
    skipped: list[str] = []

    try:
        envelope = normalize_envelope(_load(source))
        log.info(
            "Restoring snapshot",
            version=envelope.format_version,
            produced_by=envelope.produced_by,
            created_at=envelope.created_at,
        )

        context.log("Analyzing backup structure & Reconciling IDs...")
        reconciled = await reconcile(
            envelope, store, context, reject_ambiguous=cfg.reject_ambiguous_matches
        )

        context.log("Starting restore...")
        step_ctx = StepContext(actor=actor, live_keys=reconciled.live_keys)
        for phase in plan.phases:
            for step in phase.steps:
                rows = list(reconciled.envelope.rows(step.table))
                if step.transform and rows:
                    rows = step.transform(rows, step_ctx)
                rows = sanitize(step.table, rows, context)
                if not rows:
                    continue
                written, was_skipped = await _write_table(
                    store, step.table, rows, context, cfg.chunk_size
                )
                rows_written[step.label] = written
                if was_skipped:
                    skipped.append(step.label)
            context.set_progress(phase.progress)

    except Exception as e:
        context.error(getattr(e, "message", str(e)))
        raise

    context.set_progress(100)
    context.log("Restore complete.")

    if on_complete is not None:
        outcome = on_complete()
        if inspect.isawaitable(outcome):
            await outcome

    return RestoreReport(
        log=list(context.lines),
        progress=context.progress,
        rows_written=rows_written,
        skipped_tables=skipped,
        id_map=reconciled.id_map,
        collisions=reconciled.collisions,
        duration_seconds=time.time() - start_time,
    )
