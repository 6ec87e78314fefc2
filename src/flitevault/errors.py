"""Custom exceptions for flitevault."""


class FliteVaultError(Exception):
    """Base exception for all flitevault errors."""

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SnapshotFormatError(FliteVaultError):
    """Raised when a snapshot file does not have the envelope shape."""


class UnknownTableError(FliteVaultError):
    """Raised when a table name is not part of the registry."""

    def __init__(self, table: str) -> None:
        super().__init__(f"Unknown table: {table}", details={"table": table})


class ExportError(FliteVaultError):
    """Raised when a snapshot export cannot fetch one of its tables."""


class RestoreCancelledError(FliteVaultError):
    """Raised when the operator declines the restore confirmation."""


class RestoreError(FliteVaultError):
    """Base class for fatal restore failures."""

    def __init__(
        self, message: str, *, table: str | None = None, details: dict[str, object] | None = None
    ) -> None:
        merged = dict(details or {})
        if table is not None:
            merged.setdefault("table", table)
        super().__init__(message, details=merged)
        self.table = table


class PermissionDeniedError(RestoreError):
    """Raised when the store refuses writes to a table that must be restored."""

    def __init__(self, table: str) -> None:
        super().__init__(
            f"Permission denied for {table}. Ensure you have admin rights.",
            table=table,
        )


class SchemaMismatchError(RestoreError):
    """Raised when the target schema lacks a column present in the snapshot."""

    def __init__(self, table: str, detail: str) -> None:
        super().__init__(
            f"Schema mismatch in '{table}': {detail}.",
            table=table,
            details={"detail": detail},
        )


class TableRestoreError(RestoreError):
    """Raised for any other store failure while writing a table."""

    def __init__(self, table: str, detail: str) -> None:
        super().__init__(
            f"Failed to restore {table}: {detail}",
            table=table,
            details={"detail": detail},
        )


class AmbiguousMatchError(RestoreError):
    """Raised when several backup entities reconcile to one live entity."""

    def __init__(self, table: str, live_id: str, backup_ids: list[str]) -> None:
        super().__init__(
            f"Ambiguous match in '{table}': backup ids {', '.join(backup_ids)} "
            f"all resolve to live id {live_id}",
            table=table,
            details={"live_id": live_id, "backup_ids": backup_ids},
        )


class ConfigurationError(FliteVaultError):
    """Raised when required settings are missing."""


class InvalidPlanError(FliteVaultError):
    """Raised when a restore plan breaks its ordering rules."""
