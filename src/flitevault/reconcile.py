"""Identity reconciliation between a snapshot and the live store.

Reference entities (roles, departments, leave types, ...) and staff are
matched to live rows by natural key. When a match has a different id the
backup id is relabeled across the entire snapshot, so every foreign key,
wherever it lives, follows the entity to its live id.
"""

import copy
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from flitevault.codec import SnapshotEnvelope
from flitevault.context import RestoreContext
from flitevault.errors import AmbiguousMatchError
from flitevault.relabel import relabel_tables
from flitevault.store import SnapshotStore, StoreError
from flitevault.tables import RECONCILE_ORDER, get_table

log = structlog.get_logger()


@dataclass(frozen=True)
class AmbiguousMatch:
    """Several backup entities resolved to the same live entity."""

    table: str
    live_id: str
    backup_ids: tuple[str, ...]


@dataclass
class ReconcileResult:
    """Outcome of reconciling one snapshot."""

    envelope: SnapshotEnvelope
    id_map: dict[str, str] = field(default_factory=dict)
    counts: dict[str, int] = field(default_factory=dict)
    collisions: list[AmbiguousMatch] = field(default_factory=list)
    # table -> lower-cased natural key -> live id
    live_keys: dict[str, dict[str, str]] = field(default_factory=dict)

    @property
    def remapped(self) -> int:
        return sum(self.counts.values())


def natural_key(value: Any) -> str | None:
    """Lower-cased string form of a natural key, or None when empty."""
    if value is None:
        return None
    text = str(value)
    return text.lower() if text else None


def build_live_map(rows: Sequence[dict[str, Any]], key_field: str) -> dict[str, str]:
    live: dict[str, str] = {}
    for row in rows:
        key = natural_key(row.get(key_field))
        if key:
            live[key] = row["id"]
    return live


async def reconcile(
    envelope: SnapshotEnvelope,
    store: SnapshotStore,
    context: RestoreContext | None = None,
    *,
    reject_ambiguous: bool = False,
    order: Sequence[str] = RECONCILE_ORDER,
) -> ReconcileResult:
    """Align snapshot identifiers with the live store.

    Tables are processed in ``order``; staff comes last so that its foreign
    keys already point at reconciled reference ids.

    Args:
        envelope: Decoded, normalized snapshot. It is not mutated.
        store: Target store used for natural-key lookups.
        context: Optional restore context receiving log lines.
        reject_ambiguous: Raise instead of letting the last match win when
            two backup entities resolve to one live entity.

    Returns:
        ReconcileResult holding the relabeled envelope and the id map.

    Raises:
        AmbiguousMatchError: On a collision when ``reject_ambiguous`` is set.
        StoreError: If a live lookup fails, except a permission-denied read
            of a reference table, which is logged and leaves that table as is.
    """
    context = context or RestoreContext()
    tables: dict[str, Any] = copy.deepcopy(envelope.tables)
    result = ReconcileResult(envelope=envelope)

    for table in order:
        descriptor = get_table(table)
        key_field = descriptor.natural_key_field
        if key_field is None or not tables.get(table):
            continue

        context.log(f"Reconciling {table}...", table=table)
        try:
            live_rows = await store.fetch_columns(table, ["id", key_field])
        except StoreError as e:
            if not (descriptor.is_reference and e.is_permission_denied):
                raise
            context.warn(
                f"  -> Cannot read {table} ({e.message}); keeping backup IDs.", table=table
            )
            continue
        live_map = build_live_map(live_rows, key_field)
        result.live_keys[table] = live_map

        count = 0
        claimed: dict[str, list[str]] = {}
        for index in range(len(tables[table])):
            record = tables[table][index]
            key = natural_key(record.get(key_field))
            live_id = live_map.get(key) if key else None
            if live_id is None:
                continue

            backup_id = record.get("id")
            claimed.setdefault(live_id, [])
            if backup_id is not None and str(backup_id) not in claimed[live_id]:
                claimed[live_id].append(str(backup_id))
            if backup_id == live_id:
                continue

            if isinstance(backup_id, str) and backup_id:
                tables = relabel_tables(tables, backup_id, live_id)
                result.id_map[backup_id] = live_id
            tables[table][index]["id"] = live_id
            count += 1

        for live_id, backup_ids in claimed.items():
            if len(backup_ids) < 2:
                continue
            collision = AmbiguousMatch(table=table, live_id=live_id, backup_ids=tuple(backup_ids))
            result.collisions.append(collision)
            context.warn(
                f"  -> {len(backup_ids)} {table} records match the same live entry "
                f"({live_id}); the last one wins.",
                table=table,
                live_id=live_id,
            )
            if reject_ambiguous:
                raise AmbiguousMatchError(table, live_id, backup_ids)

        result.counts[table] = count
        if count:
            context.log(f"  -> Remapped {count} {table} ID(s) to match local DB.", table=table)

    result.envelope = envelope.model_copy(update={"tables": tables})
    log.debug("Reconciliation finished", remapped=result.remapped, ids=len(result.id_map))
    return result
