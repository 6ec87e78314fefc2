"""Pydantic schemas for admin API responses."""

from pydantic import BaseModel, Field

from flitevault.restore import RestoreReport


class AmbiguousMatchSchema(BaseModel):
    """Several backup entities that reconciled to one live entity."""

    table: str
    live_id: str
    backup_ids: list[str]


class RestoreResponse(BaseModel):
    """Outcome of a successful restore."""

    success: bool = True
    log: list[str] = Field(default_factory=list, description="Timestamped restore log")
    progress: int = Field(default=0, ge=0, le=100)
    rows_written: dict[str, int] = Field(default_factory=dict)
    skipped_tables: list[str] = Field(default_factory=list)
    remapped: int = Field(default=0, description="Backup ids relabeled to live ids")
    collisions: list[AmbiguousMatchSchema] = Field(default_factory=list)
    duration_seconds: float = 0.0
    reload_required: bool = True

    @classmethod
    def from_report(cls, report: RestoreReport) -> "RestoreResponse":
        return cls(
            log=report.log,
            progress=report.progress,
            rows_written=report.rows_written,
            skipped_tables=report.skipped_tables,
            remapped=len(report.id_map),
            collisions=[
                AmbiguousMatchSchema(
                    table=c.table, live_id=c.live_id, backup_ids=list(c.backup_ids)
                )
                for c in report.collisions
            ],
            duration_seconds=round(report.duration_seconds, 3),
            reload_required=report.reload_required,
        )


class RestoreFailure(BaseModel):
    """Body of a 409 response when a restore stops on a fatal error."""

    message: str
    table: str | None = None
    log: list[str] = Field(default_factory=list)
