"""Snapshot envelope model and its JSON codec.

Current envelopes look like::

    {
      "createdAt": "2026-10-19T08:00:00+00:00",
      "formatVersion": "1.8",
      "producedBy": "ops@b4flite.example",
      "tables": {"staff": [...], "roles": [...], ...}
    }

Envelopes written by the 1.x portal (``timestamp``/``version``/``exportedBy``
with camelCase ``data`` collections) are upgraded on read.
"""

import json
import re
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from flitevault.errors import SnapshotFormatError
from flitevault.tables import (
    LEGACY_SHAPED_TABLES,
    TABLE_NAMES,
    is_known_table,
    table_for_legacy_key,
)

log = structlog.get_logger()

# Dictionary-valued fields whose keys are identifiers; their contents are
# never re-cased.
PROTECTED_KEYS = frozenset(
    {
        "flightHoursByAircraft",
        "customFields",
        "answers",
        "categoryScores",
        "selfResponses",
        "managerResponses",
        "rosterData",
        "managedSubDepartments",
        "categoryRules",
        "snapshot",
    }
)

_CAPITAL = re.compile(r"[A-Z]")


class SnapshotEnvelope(BaseModel):
    """Versioned container for a full-store snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    created_at: str = Field(default="", alias="createdAt")
    format_version: str = Field(alias="formatVersion")
    produced_by: str = Field(default="", alias="producedBy")
    tables: dict[str, Any] = Field(default_factory=dict)

    # Unknown collections found while decoding; never serialized
    ignored_tables: list[str] = Field(default_factory=list, exclude=True)

    def rows(self, table: str) -> Any:
        """Return the payload stored for ``table`` (empty list when absent)."""
        value = self.tables.get(table)
        return [] if value is None else value

    def row_counts(self) -> dict[str, int]:
        return {name: len(self.rows(name)) for name in TABLE_NAMES}

    def to_wire(self) -> dict[str, Any]:
        """Dict in the on-disk layout."""
        return self.model_dump(by_alias=True)


def new_envelope(
    tables: dict[str, list[dict[str, Any]]],
    *,
    format_version: str,
    produced_by: str,
    created_at: datetime | None = None,
) -> SnapshotEnvelope:
    """Build an envelope stamped with the current time."""
    stamp = (created_at or datetime.now(UTC)).isoformat()
    return SnapshotEnvelope(
        created_at=stamp,
        format_version=format_version,
        produced_by=produced_by,
        tables=tables,
    )


def encode_snapshot(envelope: SnapshotEnvelope) -> str:
    """Serialize an envelope to indented JSON text."""
    return json.dumps(envelope.to_wire(), indent=2, ensure_ascii=False, default=str)


def decode_snapshot(text: str | bytes) -> SnapshotEnvelope:
    """Parse and validate snapshot JSON.

    Known tables missing from the file become empty lists and unknown ones are
    dropped (listed in ``ignored_tables``).

    Raises:
        SnapshotFormatError: If the text is not a snapshot envelope.
    """
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SnapshotFormatError(f"Invalid backup file format: {e}") from e

    if not isinstance(raw, dict):
        raise SnapshotFormatError("Invalid backup file format: root must be an object")

    if "tables" not in raw and "data" in raw:
        raw = _upgrade_legacy(raw)

    tables = raw.get("tables")
    if not isinstance(tables, dict):
        raise SnapshotFormatError("Invalid backup file format: missing 'tables' object")

    format_version = raw.get("formatVersion")
    if not isinstance(format_version, str) or not format_version:
        raise SnapshotFormatError("Invalid backup file format: missing 'formatVersion'")

    clean: dict[str, Any] = {}
    ignored: list[str] = []
    for name, value in tables.items():
        if not is_known_table(name):
            ignored.append(name)
            continue
        clean[name] = _validate_table(name, value)

    for name in TABLE_NAMES:
        clean.setdefault(name, [])

    if ignored:
        log.info("Ignoring unknown snapshot tables", tables=ignored)

    return SnapshotEnvelope(
        created_at=str(raw.get("createdAt") or ""),
        format_version=format_version,
        produced_by=str(raw.get("producedBy") or ""),
        tables=clean,
        ignored_tables=ignored,
    )


def _validate_table(name: str, value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, dict):
        if name in LEGACY_SHAPED_TABLES:
            return value
        raise SnapshotFormatError(
            f"Invalid backup file format: '{name}' must be a list of records",
            details={"table": name},
        )
    if not isinstance(value, list):
        raise SnapshotFormatError(
            f"Invalid backup file format: '{name}' must be a list of records",
            details={"table": name},
        )
    for index, row in enumerate(value):
        if not isinstance(row, dict):
            raise SnapshotFormatError(
                f"Invalid backup file format: record {index} of '{name}' is not an object",
                details={"table": name, "index": index},
            )
    return value


def to_snake_case(value: Any) -> Any:
    """Recursively convert camelCase keys to snake_case.

    Values under ``PROTECTED_KEYS`` are kept verbatim because their keys are
    identifiers or user-defined labels.
    """
    if isinstance(value, list):
        return [to_snake_case(item) for item in value]
    if not isinstance(value, dict):
        return value
    converted: dict[str, Any] = {}
    for key, item in value.items():
        snake = _CAPITAL.sub(lambda m: f"_{m.group(0).lower()}", key)
        converted[snake] = item if key in PROTECTED_KEYS else to_snake_case(item)
    return converted


def _upgrade_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    """Translate a 1.x envelope (camelCase ``data`` collections) to the current layout."""
    data = raw.get("data")
    if not isinstance(data, dict):
        raise SnapshotFormatError("Invalid backup file format: 'data' must be an object")

    tables: dict[str, Any] = {}
    for key, value in data.items():
        descriptor = table_for_legacy_key(key)
        name = descriptor.name if descriptor else key
        if isinstance(value, list):
            tables[name] = to_snake_case(value)
        elif isinstance(value, dict) and name in ("department_settings", "roster_metadata"):
            # Keys are department / metadata ids
            tables[name] = {k: to_snake_case(v) for k, v in value.items()}
        else:
            tables[name] = value

    log.info("Upgrading legacy snapshot", version=raw.get("version"))
    return {
        "createdAt": raw.get("timestamp", ""),
        "formatVersion": str(raw.get("version") or "1.0"),
        "producedBy": raw.get("exportedBy", ""),
        "tables": tables,
    }


def snapshot_filename(product: str, day: date | None = None) -> str:
    """Download filename, e.g. ``b4flite_backup_2026-10-19.json``."""
    day = day or datetime.now(UTC).date()
    return f"{product}_backup_{day.isoformat()}.json"


def ensure_json_filename(name: str) -> None:
    """Reject anything that is not a ``.json`` file."""
    if not name.lower().endswith(".json"):
        raise SnapshotFormatError(
            f"Snapshot files must be .json: {name}", details={"filename": name}
        )


def load_snapshot(path: Path) -> SnapshotEnvelope:
    """Read and decode a snapshot file."""
    ensure_json_filename(path.name)
    return decode_snapshot(path.read_bytes())


def dump_snapshot(
    envelope: SnapshotEnvelope,
    directory: Path,
    *,
    product: str,
    day: date | None = None,
) -> Path:
    """Write ``envelope`` into ``directory`` under its dated filename."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / snapshot_filename(product, day)
    path.write_text(encode_snapshot(envelope), encoding="utf-8")
    return path
