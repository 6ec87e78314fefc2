"""Test harness for flitevault.

Provides an in-memory ``SnapshotStore`` and sample data so the export and
restore engine can be exercised without a hosted database.

Example usage:

    from tests.harness import MemoryStore, sample_tables

    async def test_round_trip():
        store = MemoryStore.seeded(sample_tables())
        envelope = await export_snapshot(store)
        await restore_snapshot(envelope, store=store)
"""

from tests.harness.mocks import (
    ADMIN_AUTH_ID,
    ADMIN_EMAIL,
    MemoryStore,
    denied,
    missing_column,
    sample_tables,
    uid,
)

__all__ = [
    "ADMIN_AUTH_ID",
    "ADMIN_EMAIL",
    "MemoryStore",
    "denied",
    "missing_column",
    "sample_tables",
    "uid",
]
