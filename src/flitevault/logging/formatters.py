"""structlog renderer for flitevault.

Produces pipe-separated output: service | timestamp | level | message key=value...
"""

from __future__ import annotations

import sys
import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from structlog.typing import EventDict, WrappedLogger

ANSI_CYAN = "\033[38;2;128;255;234m"
ANSI_YELLOW = "\033[38;2;241;250;140m"
ANSI_RED = "\033[38;2;255;99;99m"
ANSI_PURPLE = "\033[38;2;225;53;255m"
ANSI_CORAL = "\033[38;2;255;106;193m"
ANSI_DIM = "\033[38;2;85;85;102m"
ANSI_RESET = "\033[0m"

LEVEL_COLORS: dict[str, str] = {
    "debug": ANSI_DIM,
    "info": ANSI_CYAN,
    "warning": ANSI_YELLOW,
    "warn": ANSI_YELLOW,
    "error": ANSI_RED,
    "critical": ANSI_PURPLE,
}


class VaultRenderer:
    """Render events as ``service | HH:MM:SS | level | message key=value``.

    Example:
        cli   | 09:41:02 | info  | Restoring records table=staff rows=212
        cli   | 09:41:03 | warning | Permission denied table=roles
    """

    def __init__(
        self,
        service_name: str = "vault",
        service_width: int = 5,
        colors: bool = False,
        max_exception_frames: int = 5,
    ) -> None:
        self.service_name = service_name
        self.service_width = service_width
        self.colors = colors
        self.max_exception_frames = max_exception_frames

    def __call__(
        self,
        logger: WrappedLogger,
        method_name: str,
        event_dict: EventDict,
    ) -> str:
        timestamp = event_dict.pop("timestamp", datetime.now().strftime("%H:%M:%S"))
        level = event_dict.pop("level", method_name).lower()
        event = str(event_dict.pop("event", ""))

        exc_info = event_dict.pop("exc_info", None)
        exception_str = self._format_exception(exc_info) if exc_info else ""

        kv_pairs = " ".join(
            f"{key}={value}" for key, value in event_dict.items() if not key.startswith("_")
        )

        service = f"{self.service_name:<{self.service_width}}"
        lvl = f"{level:<5}"
        if self.colors:
            service = f"{ANSI_CORAL}{service}{ANSI_RESET}"
            timestamp = f"{ANSI_DIM}{timestamp}{ANSI_RESET}"
            lvl = f"{LEVEL_COLORS.get(level, ANSI_CYAN)}{lvl}{ANSI_RESET}"
            if kv_pairs:
                kv_pairs = f"{ANSI_DIM}{kv_pairs}{ANSI_RESET}"

        line = f"{service} | {timestamp} | {lvl} | {event}"
        if kv_pairs:
            line += f" {kv_pairs}"
        if exception_str:
            line += f"\n{exception_str}"
        return line

    def _format_exception(self, exc_info: tuple[Any, ...] | bool) -> str:
        """Format the most recent frames of an exception, without locals."""
        if exc_info is True:
            exc_info = sys.exc_info()

        if not exc_info or exc_info[0] is None:
            return ""

        exc_type, exc_value, exc_tb = exc_info

        tb_lines = traceback.format_tb(exc_tb)
        if len(tb_lines) > self.max_exception_frames:
            tb_lines = ["  ... (truncated)\n", *tb_lines[-self.max_exception_frames :]]

        indent = "         "
        formatted_tb = "".join(tb_lines).rstrip()
        formatted_tb = "\n".join(indent + line for line in formatted_tb.split("\n"))

        exc_name = exc_type.__name__
        if exc_type.__module__ and exc_type.__module__ != "builtins":
            exc_name = f"{exc_type.__module__}.{exc_name}"

        if self.colors:
            return f"{indent}{ANSI_RED}{exc_name}: {exc_value}{ANSI_RESET}\n{formatted_tb}"
        return f"{indent}{exc_name}: {exc_value}\n{formatted_tb}"
