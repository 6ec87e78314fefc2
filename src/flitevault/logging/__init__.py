"""flitevault logging.

Usage:
    from flitevault.logging import configure_logging, get_logger

    # At application startup
    configure_logging(service_name="cli")

    # In modules
    log = get_logger()
    log.info("Restore started", tables=31)
"""

from flitevault.logging.config import configure_logging, get_logger, is_configured
from flitevault.logging.formatters import LEVEL_COLORS, VaultRenderer

__all__ = [
    "LEVEL_COLORS",
    "VaultRenderer",
    "configure_logging",
    "get_logger",
    "is_configured",
]
