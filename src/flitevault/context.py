"""Per-run restore log and progress tracking."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import structlog

log = structlog.get_logger()


@dataclass
class RestoreContext:
    """Advisory log and 0-100 progress for one restore invocation.

    Lines are stored as ``"[HH:MM:SS] message"`` and mirrored to structlog.
    Progress only moves forward.
    """

    on_log: Callable[[str], None] | None = None
    on_progress: Callable[[int], None] | None = None
    clock: Callable[[], datetime] = datetime.now
    lines: list[str] = field(default_factory=list)
    progress: int = 0
    warnings: int = 0

    def log(self, message: str, *, level: str = "info", **fields: object) -> str:
        line = f"[{self.clock().strftime('%H:%M:%S')}] {message}"
        self.lines.append(line)
        if level == "warning":
            self.warnings += 1
        getattr(log, level)(message, **fields)
        if self.on_log:
            self.on_log(line)
        return line

    def warn(self, message: str, **fields: object) -> str:
        return self.log(message, level="warning", **fields)

    def error(self, message: str, **fields: object) -> str:
        return self.log(f"ERROR: {message}", level="error", **fields)

    def set_progress(self, value: int) -> None:
        value = max(0, min(100, value))
        if value <= self.progress:
            return
        self.progress = value
        if self.on_progress:
            self.on_progress(value)
