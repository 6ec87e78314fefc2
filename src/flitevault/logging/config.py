"""Logging configuration for flitevault surfaces.

Usage:
    from flitevault.logging import configure_logging, get_logger

    configure_logging(service_name="api")
    log = get_logger()
    log.info("Snapshot exported", tables=31)
"""

from __future__ import annotations

import logging
import sys

import structlog

from flitevault.logging.formatters import VaultRenderer

# Track if logging has been configured
_configured = False


def configure_logging(
    *,
    service_name: str = "vault",
    service_width: int = 5,
    level: str = "INFO",
    colors: bool | None = None,
    json_output: bool = False,
) -> None:
    """Configure structlog with the flitevault console renderer.

    Call this once at startup before any logging.

    Args:
        service_name: Service identifier (cli, api, ...)
        service_width: Width for service name padding
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        colors: Enable colors (auto-detect TTY if None)
        json_output: Use JSON output for log aggregation
    """
    global _configured

    if colors is None:
        colors = sys.stderr.isatty()

    _configure_stdlib_logging(level)

    if json_output:
        renderer: structlog.typing.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = VaultRenderer(
            service_name=service_name,
            service_width=service_width,
            colors=colors,
        )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    _configured = True


def is_configured() -> bool:
    """Return True once configure_logging() has run."""
    return _configured


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (usually module __name__)
    """
    return structlog.get_logger(name)


def _configure_stdlib_logging(level: str) -> None:
    """Configure stdlib logging and quiet the HTTP stack."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[logging.StreamHandler()],
    )

    for logger_name in ("httpx", "httpcore", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)
