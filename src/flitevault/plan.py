"""Dependency-ordered restore plan.

The plan is data: phases of steps, each step naming a table and an optional
row transform. Departments and staff reference each other (department
manager -> staff, staff -> department), so departments are written twice:
once with managers detached before staff exist, and again afterwards.
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from flitevault.errors import InvalidPlanError
from flitevault.store import Actor
from flitevault.tables import TABLE_NAMES, get_table

Row = dict[str, Any]

DEPARTMENTS_STRUCTURE = "departments:structure"
DEPARTMENTS_MANAGERS = "departments:managers"


@dataclass(frozen=True)
class StepContext:
    """What row transforms may know about the current restore."""

    actor: Actor | None = None
    # table -> lower-cased natural key -> live id, from reconciliation
    live_keys: dict[str, dict[str, str]] = field(default_factory=dict)

    @property
    def actor_staff_id(self) -> str | None:
        """Live staff id of the person running the restore, if any."""
        if self.actor is None or not self.actor.email:
            return None
        return self.live_keys.get("staff", {}).get(self.actor.email.lower())


RowTransform = Callable[[list[Row], StepContext], list[Row]]


@dataclass(frozen=True)
class RestoreStep:
    table: str
    transform: RowTransform | None = None
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.table


@dataclass(frozen=True)
class Phase:
    name: str
    steps: tuple[RestoreStep, ...]
    progress: int


@dataclass(frozen=True)
class RestorePlan:
    phases: tuple[Phase, ...]

    def steps(self) -> Iterator[RestoreStep]:
        for phase in self.phases:
            yield from phase.steps

    def validate(self) -> "RestorePlan":
        """Check the ordering rules; returns self for chaining.

        Raises:
            InvalidPlanError: On an unregistered or missing table, decreasing
                progress, or a broken department/staff ordering.
        """
        labels = [step.label for step in self.steps()]
        tables = {step.table for step in self.steps()}

        for table in tables:
            get_table(table)
        missing = [name for name in TABLE_NAMES if name not in tables]
        if missing:
            raise InvalidPlanError(
                f"Plan does not restore: {', '.join(missing)}", details={"missing": missing}
            )

        checkpoints = [phase.progress for phase in self.phases]
        if checkpoints != sorted(checkpoints) or not all(0 <= p <= 100 for p in checkpoints):
            raise InvalidPlanError("Phase progress must increase within 0-100")

        required = [DEPARTMENTS_STRUCTURE, "staff", DEPARTMENTS_MANAGERS]
        positions = []
        for label in required:
            if label not in labels:
                raise InvalidPlanError(f"Plan is missing step '{label}'")
            positions.append(labels.index(label))
        if positions != sorted(positions):
            raise InvalidPlanError(
                "Departments must be written without managers before staff "
                "and with managers after staff"
            )
        return self


def detach_managers(rows: list[Row], _ctx: StepContext) -> list[Row]:
    """Departments without their manager link, so they can exist before staff."""
    return [{**row, "manager_id": None} for row in rows]


def bind_staff_auth(rows: list[Row], ctx: StepContext) -> list[Row]:
    """Drop login bindings from another environment.

    Only the operator's own staff row keeps a login: it is bound to the
    operator's auth identity.
    """
    own_id = ctx.actor_staff_id
    auth_id = ctx.actor.auth_id if ctx.actor else None
    return [
        {**row, "auth_id": auth_id if own_id and row.get("id") == own_id else None}
        for row in rows
    ]


def _steps(*tables: str) -> tuple[RestoreStep, ...]:
    return tuple(RestoreStep(table) for table in tables)


DEFAULT_PLAN = RestorePlan(
    phases=(
        Phase(
            "reference",
            _steps(
                "roles",
                "leave_types",
                "public_holidays",
                "custom_field_definitions",
                "validation_rule_sets",
                "roster_view_templates",
                "checklist_templates",
                "qualification_types",
                "aircraft_types",
                "license_types",
                "special_qualifications",
            ),
            progress=20,
        ),
        Phase(
            "departments",
            (RestoreStep("departments", detach_managers, DEPARTMENTS_STRUCTURE),),
            progress=30,
        ),
        Phase("staff", (RestoreStep("staff", bind_staff_auth),), progress=45),
        Phase(
            "department managers",
            (RestoreStep("departments", name=DEPARTMENTS_MANAGERS),),
            progress=50,
        ),
        Phase("settings", _steps("department_settings"), progress=60),
        Phase("rosters", _steps("rosters", "roster_metadata"), progress=75),
        Phase(
            "operations",
            _steps(
                "flight_log_records",
                "flight_hours_adjustments",
                "leave_requests",
                "leave_transactions",
                "fsi_documents",
                "fsi_acknowledgments",
                "questions",
                "exams",
                "exam_attempts",
                "duty_swaps",
            ),
            progress=90,
        ),
        Phase(
            "hr",
            _steps(
                "employee_goals",
                "performance_templates",
                "performance_reviews",
                "lunch_menus",
                "lunch_orders",
            ),
            progress=100,
        ),
    )
).validate()
