"""Registry of the portal tables carried in a snapshot.

Each table has a static descriptor that drives reconciliation, row
sanitization and error routing during restore.
"""

from dataclasses import dataclass
from enum import StrEnum

from flitevault.errors import UnknownTableError


class TableRole(StrEnum):
    """How a table participates in a restore."""

    REFERENCE = "reference"  # shared lookup/configuration entities
    STAFF_LIKE = "staff_like"
    STRUCTURAL = "structural"
    HISTORICAL = "historical"


@dataclass(frozen=True)
class TableDescriptor:
    """Static description of one table."""

    name: str
    role: TableRole
    legacy_key: str
    natural_key_field: str | None = None
    requires_strict_id: bool = False
    primary_key: tuple[str, ...] = ("id",)

    @property
    def is_reference(self) -> bool:
        """Reference tables tolerate permission failures on restore."""
        return self.role is TableRole.REFERENCE


def _t(
    name: str,
    role: TableRole,
    legacy_key: str,
    natural_key_field: str | None = None,
    *,
    strict: bool = False,
    primary_key: tuple[str, ...] = ("id",),
) -> TableDescriptor:
    return TableDescriptor(
        name=name,
        role=role,
        legacy_key=legacy_key,
        natural_key_field=natural_key_field,
        requires_strict_id=strict,
        primary_key=primary_key,
    )


REF = TableRole.REFERENCE
HIST = TableRole.HISTORICAL
STRUCT = TableRole.STRUCTURAL

TABLES: tuple[TableDescriptor, ...] = (
    # Identity
    _t("staff", TableRole.STAFF_LIKE, "staff", "email"),
    _t("departments", STRUCT, "departments", "name"),
    _t("roles", REF, "roles", "name"),
    # Settings
    _t("department_settings", STRUCT, "departmentSettings", primary_key=("department_id",)),
    _t("leave_types", REF, "leaveTypes", "name"),
    _t("public_holidays", REF, "publicHolidays"),
    _t("custom_field_definitions", REF, "customFieldDefs"),
    _t("validation_rule_sets", REF, "validationRuleSets"),
    _t("roster_view_templates", REF, "rosterViewTemplates"),
    _t("qualification_types", REF, "qualificationTypes", "code"),
    _t("aircraft_types", REF, "aircraftTypes", "name"),
    _t("license_types", REF, "licenseTypes", "name"),
    _t("special_qualifications", REF, "specialQualifications", "name"),
    # Modules
    _t("checklist_templates", REF, "checklistTemplates"),
    _t("leave_requests", HIST, "leaveRequests"),
    _t("leave_transactions", HIST, "leaveTransactions"),
    _t("fsi_documents", HIST, "fsiDocuments"),
    _t("fsi_acknowledgments", HIST, "fsiAcks", strict=True),
    _t("exams", HIST, "exams"),
    _t("questions", HIST, "questions"),
    _t("exam_attempts", HIST, "examAttempts", strict=True),
    _t("flight_log_records", HIST, "flightLogRecords", strict=True),
    _t("flight_hours_adjustments", HIST, "flightHoursAdjustments"),
    _t("rosters", STRUCT, "rosters", primary_key=("month_key", "department_id")),
    _t("roster_metadata", STRUCT, "rosterMetadata"),
    _t("duty_swaps", HIST, "dutySwaps"),
    # HR
    _t("employee_goals", HIST, "employeeGoals"),
    _t("performance_templates", HIST, "performanceTemplates"),
    _t("performance_reviews", HIST, "performanceReviews"),
    # Lunch
    _t("lunch_menus", HIST, "lunchMenus"),
    _t("lunch_orders", HIST, "lunchOrders"),
)

TABLE_NAMES: tuple[str, ...] = tuple(t.name for t in TABLES)

_BY_NAME: dict[str, TableDescriptor] = {t.name: t for t in TABLES}
_BY_LEGACY_KEY: dict[str, TableDescriptor] = {t.legacy_key: t for t in TABLES}

# Tables whose snapshot value may be a legacy nested object instead of a row list
LEGACY_SHAPED_TABLES = frozenset({"department_settings", "rosters", "roster_metadata"})

# Tables that must carry UUID primary keys; audit_logs is never exported but
# older snapshots may contain it.
STRICT_ID_TABLES = frozenset({t.name for t in TABLES if t.requires_strict_id} | {"audit_logs"})

# Reconciliation priority: reference tables first, staff last
RECONCILE_ORDER: tuple[str, ...] = (
    "roles",
    "departments",
    "leave_types",
    "aircraft_types",
    "qualification_types",
    "license_types",
    "special_qualifications",
    "staff",
)


def get_table(name: str) -> TableDescriptor:
    """Look up a table descriptor by name."""
    try:
        return _BY_NAME[name]
    except KeyError:
        raise UnknownTableError(name) from None


def is_known_table(name: str) -> bool:
    return name in _BY_NAME


def table_for_legacy_key(key: str) -> TableDescriptor | None:
    """Map a 1.x camelCase collection key to its table."""
    return _BY_LEGACY_KEY.get(key)
