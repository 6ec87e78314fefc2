"""Tests for the flitevault CLI."""

import json

import pytest
from typer.testing import CliRunner

from flitevault.cli import snapshot
from flitevault.cli.main import app
from flitevault.codec import encode_snapshot, new_envelope
from tests.harness import MemoryStore, denied, sample_tables

runner = CliRunner()


def _text(output: str) -> str:
    """Collapse rich line wrapping."""
    return " ".join(output.split())


@pytest.fixture
def use_store(monkeypatch, store: MemoryStore) -> MemoryStore:
    monkeypatch.setattr(snapshot, "open_store", lambda: store)
    return store


@pytest.fixture
def backup_file(tmp_path):
    path = tmp_path / "b4flite_backup_2026-10-19.json"
    envelope = new_envelope(sample_tables(), format_version="1.8", produced_by="Ops Desk")
    path.write_text(encode_snapshot(envelope), encoding="utf-8")
    return path


class TestBackup:
    def test_writes_snapshot(self, use_store: MemoryStore, tmp_path) -> None:
        result = runner.invoke(app, ["backup", "--output-dir", str(tmp_path)])

        assert result.exit_code == 0, result.output
        files = list(tmp_path.glob("*_backup_*.json"))
        assert len(files) == 1
        raw = json.loads(files[0].read_text(encoding="utf-8"))
        assert raw["tables"]["roles"] == sample_tables()["roles"]
        assert "Backup created" in _text(result.output)
        assert use_store.closed

    def test_export_failure(self, use_store: MemoryStore, tmp_path) -> None:
        use_store.fetch_errors["staff"] = denied("staff")
        result = runner.invoke(app, ["backup", "--output-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "Export failed: Failed to fetch staff" in _text(result.output)


class TestRestore:
    def test_restore_with_yes(self, use_store: MemoryStore, backup_file) -> None:
        result = runner.invoke(app, ["restore", str(backup_file), "--yes"])

        assert result.exit_code == 0, result.output
        output = _text(result.output)
        assert "Restore complete!" in output
        assert "Reload open portal sessions" in output
        assert use_store.upsert_calls

    def test_prompt_declined(self, use_store: MemoryStore, backup_file) -> None:
        result = runner.invoke(app, ["restore", str(backup_file)], input="n\n")

        assert result.exit_code == 0
        output = _text(result.output)
        assert "Staff logins will be disconnected" in output
        assert "Cancelled" in output
        assert use_store.upsert_calls == []

    def test_prompt_accepted(self, use_store: MemoryStore, backup_file) -> None:
        result = runner.invoke(app, ["restore", str(backup_file)], input="y\n")
        assert result.exit_code == 0, result.output
        assert use_store.upsert_calls

    def test_rejects_non_json(self, use_store: MemoryStore, tmp_path) -> None:
        path = tmp_path / "backup.csv"
        path.write_text("id,name\n")
        result = runner.invoke(app, ["restore", str(path), "--yes"])
        assert result.exit_code == 1
        assert "must be .json" in _text(result.output)

    def test_missing_file(self, use_store: MemoryStore, tmp_path) -> None:
        result = runner.invoke(app, ["restore", str(tmp_path / "nope.json"), "--yes"])
        assert result.exit_code == 1
        assert "Backup file not found" in _text(result.output)

    def test_fatal_error(self, use_store: MemoryStore, backup_file) -> None:
        use_store.upsert_errors["staff"] = denied("staff")
        result = runner.invoke(app, ["restore", str(backup_file), "--yes"])

        assert result.exit_code == 1
        assert (
            "Restore failed: Permission denied for staff. Ensure you have admin rights."
            in _text(result.output)
        )

    def test_unknown_actor_warns(self, use_store: MemoryStore, backup_file) -> None:
        use_store.actor = None
        result = runner.invoke(app, ["restore", str(backup_file), "--yes"])
        assert result.exit_code == 0, result.output
        assert "All staff logins will be disconnected" in _text(result.output)


class TestInspect:
    def test_shows_counts(self, backup_file) -> None:
        result = runner.invoke(app, ["inspect", str(backup_file)])

        assert result.exit_code == 0, result.output
        output = _text(result.output)
        assert "Format version: 1.8" in output
        assert "Ops Desk" in output
        assert "staff" in output

    def test_invalid_file(self, tmp_path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{")
        result = runner.invoke(app, ["inspect", str(path)])
        assert result.exit_code == 1
        assert "Invalid backup file format" in _text(result.output)

    def test_missing_file(self, tmp_path) -> None:
        result = runner.invoke(app, ["inspect", str(tmp_path / "nope.json")])
        assert result.exit_code == 1
