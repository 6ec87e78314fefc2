"""Row clean-up applied right before rows are written to the target store."""

import re
from collections.abc import Callable, Iterable
from typing import Any

from flitevault.context import RestoreContext
from flitevault.tables import STRICT_ID_TABLES

Row = dict[str, Any]

STRICT_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Managed by the store on write
SERVER_TIMESTAMPS = ("created_at", "updated_at")

# Columns removed from the current schema
RETIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "fsi_documents": ("type",),
    "flight_log_records": ("signature_url",),
}

# old name -> new name; the new value wins when both are set
RENAMED_FIELDS: dict[str, dict[str, str]] = {
    "flight_log_records": {"notes": "remarks"},
}

# table -> column that must hold a YYYY-MM-DD date
REQUIRED_DATES: dict[str, str] = {
    "duty_swaps": "date",
}


def is_strict_uuid(value: object) -> bool:
    return isinstance(value, str) and STRICT_UUID.match(value) is not None


def is_iso_date(value: object) -> bool:
    return isinstance(value, str) and ISO_DATE.match(value) is not None


def _clean_row(table: str, row: Row) -> Row:
    clean = {key: value for key, value in row.items() if key not in SERVER_TIMESTAMPS}

    for column in RETIRED_FIELDS.get(table, ()):
        clean.pop(column, None)

    for old, new in RENAMED_FIELDS.get(table, {}).items():
        if old in clean:
            value = clean.pop(old)
            if not clean.get(new):
                clean[new] = value

    if table in STRICT_ID_TABLES and clean.get("id") and not is_strict_uuid(clean["id"]):
        # Let the store generate a fresh key
        del clean["id"]

    return clean


def _filter_invalid(
    rows: list[Row], predicate: Callable[[Row], bool]
) -> tuple[list[Row], int]:
    kept = [row for row in rows if predicate(row)]
    return kept, len(rows) - len(kept)


def sanitize(
    table: str, rows: Iterable[Row], context: RestoreContext | None = None
) -> list[Row]:
    """Return cleaned copies of ``rows`` ready for upsert into ``table``.

    Drops server timestamps and retired columns, applies field renames,
    strips non-UUID ids from strict tables and filters rows failing required
    date checks. Dropped rows are counted in the context log as a warning.
    """
    cleaned = [_clean_row(table, row) for row in rows]

    date_column = REQUIRED_DATES.get(table)
    if date_column:
        cleaned, dropped = _filter_invalid(
            cleaned, lambda row: is_iso_date(row.get(date_column))
        )
        if dropped and context is not None:
            context.warn(
                f"  -> Skipped {dropped} invalid {table} records (malformed {date_column}).",
                table=table,
                dropped=dropped,
            )

    return cleaned
