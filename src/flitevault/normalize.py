"""Adapters from legacy nested snapshot shapes to canonical row lists.

Older portals stored department settings and rosters as nested objects keyed
by identifiers. Everything after decoding works on row lists, so these
adapters run before reconciliation.
"""

from collections.abc import Callable
from typing import Any

import structlog

from flitevault.codec import SnapshotEnvelope
from flitevault.errors import SnapshotFormatError

log = structlog.get_logger()

Rows = list[dict[str, Any]]

DEPARTMENT_SETTINGS_COLUMNS = (
    "department_id",
    "roster_settings",
    "shift_codes",
    "max_concurrent_leave",
    "leave_accrual_policies",
    "pilot_roster_layout",
    "pilot_roster_settings",
)


def normalize_department_settings(value: Any) -> Rows:
    """One row per department, projected to the settings columns.

    Accepts a row list or the legacy ``{department_id: settings}`` object.
    """
    if isinstance(value, dict):
        rows = []
        for dept_id, settings in value.items():
            if not isinstance(settings, dict):
                raise SnapshotFormatError(
                    f"Invalid legacy settings for department {dept_id}",
                    details={"table": "department_settings", "department_id": dept_id},
                )
            rows.append({**settings, "department_id": dept_id})
    else:
        rows = list(value)
    return [{column: row.get(column) for column in DEPARTMENT_SETTINGS_COLUMNS} for row in rows]


def normalize_rosters(value: Any) -> Rows:
    """Accept a row list or the legacy ``{month_key: {department_id: roster_data}}`` object."""
    if not isinstance(value, dict):
        return list(value)
    rows: Rows = []
    for month_key, departments in value.items():
        if not isinstance(departments, dict):
            raise SnapshotFormatError(
                f"Invalid legacy roster for month {month_key}",
                details={"table": "rosters", "month_key": month_key},
            )
        for department_id, roster_data in departments.items():
            rows.append(
                {"month_key": month_key, "department_id": department_id, "roster_data": roster_data}
            )
    return rows


def normalize_roster_metadata(value: Any) -> Rows:
    """Accept a row list or the legacy ``{id: metadata}`` object."""
    if isinstance(value, dict):
        return [{"id": key, "metadata": meta} for key, meta in value.items()]
    return list(value)


NORMALIZERS: dict[str, Callable[[Any], Rows]] = {
    "department_settings": normalize_department_settings,
    "rosters": normalize_rosters,
    "roster_metadata": normalize_roster_metadata,
}


def normalize_envelope(envelope: SnapshotEnvelope) -> SnapshotEnvelope:
    """Return a copy of ``envelope`` whose tables are all row lists."""
    tables = dict(envelope.tables)
    for name, adapter in NORMALIZERS.items():
        value = tables.get(name) or []
        if isinstance(value, dict):
            log.info("Normalizing legacy table shape", table=name, entries=len(value))
        tables[name] = adapter(value)
    return envelope.model_copy(update={"tables": tables})
