"""Tests for restore orchestration."""

import json

import pytest

from flitevault.codec import encode_snapshot, new_envelope
from flitevault.config import Settings
from flitevault.context import RestoreContext
from flitevault.errors import (
    PermissionDeniedError,
    RestoreCancelledError,
    SchemaMismatchError,
    SnapshotFormatError,
    TableRestoreError,
)
from flitevault.export import export_snapshot, export_to_file
from flitevault.restore import (
    CONFIRMATION_MESSAGE,
    chunked,
    classify_store_error,
    restore_snapshot,
)
from flitevault.store import Actor, StoreError
from tests.harness import (
    ADMIN_AUTH_ID,
    ADMIN_EMAIL,
    MemoryStore,
    denied,
    missing_column,
    sample_tables,
    uid,
)


def _snapshot(tables: dict) -> bytes:
    envelope = new_envelope(tables, format_version="1.8", produced_by="Admin")
    return encode_snapshot(envelope).encode("utf-8")


class TestChunked:
    def test_splits_in_order(self) -> None:
        rows = [{"n": i} for i in range(2500)]
        batches = list(chunked(rows, 1000))
        assert [len(b) for b in batches] == [1000, 1000, 500]
        assert [row for batch in batches for row in batch] == rows

    def test_empty(self) -> None:
        assert list(chunked([], 1000)) == []

    def test_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            list(chunked([{"n": 1}], 0))


class TestClassifyStoreError:
    def test_reference_permission_denied_is_skipped(self) -> None:
        assert classify_store_error("roles", denied("roles")) is None

    def test_http_403_counts_as_denied(self) -> None:
        assert classify_store_error("roles", StoreError("Forbidden", status_code=403)) is None

    def test_other_permission_denied_is_fatal(self) -> None:
        error = classify_store_error("staff", denied("staff"))
        assert isinstance(error, PermissionDeniedError)
        assert error.message == "Permission denied for staff. Ensure you have admin rights."

    def test_unknown_column(self) -> None:
        error = classify_store_error("staff", missing_column("staff", "nickname"))
        assert isinstance(error, SchemaMismatchError)
        assert error.message.startswith("Schema mismatch in 'staff': Could not find")

    def test_column_message_without_code(self) -> None:
        error = classify_store_error(
            "exams", StoreError('column "legacy_flag" does not exist', status_code=400)
        )
        assert isinstance(error, SchemaMismatchError)

    def test_anything_else(self) -> None:
        error = classify_store_error("rosters", StoreError("duplicate key", code="23505"))
        assert isinstance(error, TableRestoreError)
        assert error.message == "Failed to restore rosters: duplicate key"
        assert error.table == "rosters"


class TestRestoreRoundTrip:
    """Export followed by restore into the same store."""

    @pytest.mark.asyncio
    async def test_same_store_unchanged(self, store: MemoryStore, admin: Actor) -> None:
        envelope = await export_snapshot(store, admin)
        report = await restore_snapshot(envelope, store=store, actor=admin)

        assert store.tables == sample_tables()
        assert report.progress == 100
        assert report.id_map == {}
        assert report.log[-1].endswith("Restore complete.")

    @pytest.mark.asyncio
    async def test_from_file(
        self, store: MemoryStore, admin: Actor, test_settings: Settings
    ) -> None:
        path = await export_to_file(store, admin, settings=test_settings)
        target = MemoryStore(actor=admin)

        report = await restore_snapshot(path, store=target, actor=admin, settings=test_settings)

        expected = sample_tables()
        del expected["roles"][0]["created_at"]
        # The admin has no staff row in the target yet, so no login is kept
        expected["staff"][0]["auth_id"] = None
        assert target.tables == expected
        assert report.total_rows == sum(len(rows) for rows in sample_tables().values()) + 1


class TestRestoreOrdering:
    @pytest.mark.asyncio
    async def test_dependency_order(self, admin: Actor) -> None:
        target = MemoryStore()
        await restore_snapshot(_snapshot(sample_tables()), store=target, actor=admin)

        assert target.written_tables() == [
            "roles",
            "leave_types",
            "aircraft_types",
            "departments",
            "staff",
            "department_settings",
            "rosters",
            "roster_metadata",
            "flight_log_records",
            "leave_requests",
            "duty_swaps",
        ]
        assert [t for t, _ in target.upsert_calls].count("departments") == 2

    @pytest.mark.asyncio
    async def test_departments_written_without_then_with_managers(self, admin: Actor) -> None:
        written: list[object] = []
        target = MemoryStore()
        upsert = target.upsert

        async def spy(table: str, rows: list[dict]) -> None:
            if table == "departments":
                written.append(rows[0]["manager_id"])
            await upsert(table, rows)

        target.upsert = spy  # type: ignore[method-assign]
        report = await restore_snapshot(_snapshot(sample_tables()), store=target, actor=admin)

        assert written == [None, uid(100)]
        assert report.rows_written["departments:structure"] == 1
        assert report.rows_written["departments:managers"] == 1

    @pytest.mark.asyncio
    async def test_empty_tables_skipped(self) -> None:
        target = MemoryStore()
        snapshot = _snapshot({"roles": [{"id": "r1", "name": "Captain"}]})
        await restore_snapshot(snapshot, store=target)
        assert target.upsert_calls == [("roles", 1)]

    @pytest.mark.asyncio
    async def test_progress_checkpoints(self) -> None:
        values: list[int] = []
        context = RestoreContext(on_progress=values.append)
        await restore_snapshot(_snapshot(sample_tables()), store=MemoryStore(), context=context)
        assert values == [20, 30, 45, 50, 60, 75, 90, 100]


class TestRestoreChunking:
    @pytest.mark.asyncio
    async def test_large_table_in_batches(self, test_settings: Settings) -> None:
        rows = [{"id": f"l-{i}", "staff_id": "s1"} for i in range(2500)]
        target = MemoryStore()

        report = await restore_snapshot(
            _snapshot({"leave_requests": rows}), store=target, settings=test_settings
        )

        assert target.upsert_calls == [
            ("leave_requests", 1000),
            ("leave_requests", 1000),
            ("leave_requests", 500),
        ]
        assert [row["id"] for row in target.rows("leave_requests")] == [r["id"] for r in rows]
        assert report.rows_written == {"leave_requests": 2500}

    @pytest.mark.asyncio
    async def test_chunk_size_from_settings(self) -> None:
        cfg = Settings(_env_file=None, chunk_size=2)
        target = MemoryStore()
        rows = [{"id": f"r{i}", "name": f"Role {i}"} for i in range(5)]
        await restore_snapshot(_snapshot({"roles": rows}), store=target, settings=cfg)
        assert [size for _, size in target.upsert_calls] == [2, 2, 1]


class TestRestoreErrors:
    """Error routing while writing tables."""

    @pytest.mark.asyncio
    async def test_reference_permission_denied_continues(self, admin: Actor) -> None:
        target = MemoryStore(upsert_errors={"roles": denied("roles")})
        context = RestoreContext()

        report = await restore_snapshot(
            _snapshot(sample_tables()), store=target, actor=admin, context=context
        )

        assert report.skipped_tables == ["roles"]
        assert report.rows_written["roles"] == 0
        assert "staff" in target.tables
        assert any(
            line.endswith("Permission denied for 'roles'. Skipping (system table).")
            for line in context.lines
        )
        # Only the first batch was attempted
        assert target.upsert_calls.count(("roles", 2)) == 1

    @pytest.mark.asyncio
    async def test_permission_denied_halts(self, admin: Actor) -> None:
        target = MemoryStore(upsert_errors={"leave_requests": denied("leave_requests")})
        context = RestoreContext()

        with pytest.raises(PermissionDeniedError) as exc_info:
            await restore_snapshot(
                _snapshot(sample_tables()), store=target, actor=admin, context=context
            )

        assert exc_info.value.table == "leave_requests"
        assert context.lines[-1].endswith(
            "ERROR: Permission denied for leave_requests. Ensure you have admin rights."
        )
        # Earlier tables stay written, later ones are never attempted
        assert "flight_log_records" in target.tables
        assert "duty_swaps" not in target.written_tables()

    @pytest.mark.asyncio
    async def test_schema_mismatch(self) -> None:
        target = MemoryStore(upsert_errors={"staff": missing_column("staff", "nickname")})
        with pytest.raises(SchemaMismatchError, match="Schema mismatch in 'staff'"):
            await restore_snapshot(_snapshot(sample_tables()), store=target)

    @pytest.mark.asyncio
    async def test_other_store_error(self) -> None:
        target = MemoryStore(upsert_errors={"rosters": StoreError("boom", code="XX000")})
        with pytest.raises(TableRestoreError, match="Failed to restore rosters: boom"):
            await restore_snapshot(_snapshot(sample_tables()), store=target)

    @pytest.mark.asyncio
    async def test_bad_snapshot_logged_and_raised(self) -> None:
        context = RestoreContext()
        with pytest.raises(SnapshotFormatError):
            await restore_snapshot(b"not json", store=MemoryStore(), context=context)
        assert "ERROR: Invalid backup file format" in context.lines[-1]


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_refusal_performs_no_reads_or_writes(self, store: MemoryStore) -> None:
        asked: list[str] = []

        def confirm(message: str) -> bool:
            asked.append(message)
            return False

        with pytest.raises(RestoreCancelledError):
            await restore_snapshot(_snapshot(sample_tables()), store=store, confirm=confirm)

        assert asked == [CONFIRMATION_MESSAGE]
        assert store.upsert_calls == []
        assert store.fetch_calls == []

    @pytest.mark.asyncio
    async def test_acceptance_proceeds(self) -> None:
        target = MemoryStore()
        await restore_snapshot(
            _snapshot({"roles": [{"id": "r1", "name": "A"}]}),
            store=target,
            confirm=lambda _message: True,
        )
        assert target.upsert_calls == [("roles", 1)]


class TestCompletion:
    @pytest.mark.asyncio
    async def test_sync_reload_hook(self) -> None:
        calls: list[str] = []
        report = await restore_snapshot(
            _snapshot({}), store=MemoryStore(), on_complete=lambda: calls.append("reload")
        )
        assert calls == ["reload"]
        assert report.reload_required is True

    @pytest.mark.asyncio
    async def test_async_reload_hook(self) -> None:
        calls: list[str] = []

        async def reload() -> None:
            calls.append("reload")

        await restore_snapshot(_snapshot({}), store=MemoryStore(), on_complete=reload)
        assert calls == ["reload"]

    @pytest.mark.asyncio
    async def test_hook_not_called_on_failure(self) -> None:
        calls: list[str] = []
        target = MemoryStore(upsert_errors={"staff": denied("staff")})
        with pytest.raises(PermissionDeniedError):
            await restore_snapshot(
                _snapshot(sample_tables()),
                store=target,
                on_complete=lambda: calls.append("reload"),
            )
        assert calls == []


class TestIdentityHandling:
    @pytest.mark.asyncio
    async def test_cross_environment_restore(self) -> None:
        """Backup ids are rewritten to the ids already present in the target."""
        target = MemoryStore.seeded(
            {
                "roles": [{"id": "live-captain", "name": "captain"}],
                "staff": [{"id": "live-admin", "email": ADMIN_EMAIL, "auth_id": ADMIN_AUTH_ID}],
            }
        )
        actor = Actor(email=ADMIN_EMAIL, auth_id=ADMIN_AUTH_ID)

        report = await restore_snapshot(_snapshot(sample_tables()), store=target, actor=actor)

        staff = {row["email"]: row for row in target.rows("staff")}
        assert staff[ADMIN_EMAIL]["id"] == "live-admin"
        assert staff[ADMIN_EMAIL]["role_id"] == "live-captain"
        assert staff[ADMIN_EMAIL]["auth_id"] == ADMIN_AUTH_ID
        assert staff["r.tan@b4flite.example"]["auth_id"] is None
        assert target.rows("departments")[0]["manager_id"] == "live-admin"
        assert target.rows("duty_swaps")[0]["target_id"] == "live-admin"
        assert report.id_map == {uid(1): "live-captain", uid(100): "live-admin"}

    @pytest.mark.asyncio
    async def test_logins_disconnected_without_actor(self) -> None:
        tables = sample_tables()
        target = MemoryStore()
        await restore_snapshot(_snapshot(tables), store=target)
        assert all(row["auth_id"] is None for row in target.rows("staff"))

    @pytest.mark.asyncio
    async def test_strict_ids_regenerated(self) -> None:
        target = MemoryStore()
        await restore_snapshot(
            _snapshot({"exam_attempts": [{"id": "attempt-7", "score": 91}]}), store=target
        )
        row = target.rows("exam_attempts")[0]
        assert row["score"] == 91
        assert row["id"] != "attempt-7"


class TestLegacySnapshots:
    @pytest.mark.asyncio
    async def test_legacy_envelope_restores(self) -> None:
        legacy = {
            "timestamp": "2024-03-01T10:00:00Z",
            "version": "1.4",
            "exportedBy": "Admin",
            "data": {
                "roles": [{"id": "r1", "name": "Captain", "createdAt": "2024-01-01"}],
                "rosters": {"2024-03": {"d1": {"s1": {"1": "D"}}}},
                "rosterMetadata": {"2024-03_d1": {"published": False}},
                "departmentSettings": {"d1": {"shiftCodes": ["D", "N"]}},
            },
        }
        target = MemoryStore()
        report = await restore_snapshot(json.dumps(legacy), store=target)

        assert target.rows("roles") == [{"id": "r1", "name": "Captain"}]
        assert target.rows("rosters") == [
            {"month_key": "2024-03", "department_id": "d1", "roster_data": {"s1": {"1": "D"}}}
        ]
        assert target.rows("roster_metadata") == [
            {"id": "2024-03_d1", "metadata": {"published": False}}
        ]
        settings_row = target.rows("department_settings")[0]
        assert settings_row["department_id"] == "d1"
        assert settings_row["shift_codes"] == ["D", "N"]
        assert report.total_rows == 4
