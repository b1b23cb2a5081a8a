"""Logging setup for scripts and notebooks that drive the engine.

The library itself only creates module loggers; nothing is configured on
import.
"""

from __future__ import annotations

import logging

from splitstats.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a basic stream handler at ``level`` (defaults to ``settings.LOG_LEVEL``)."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    logging.getLogger("splitstats").debug("Logging configured for %s", settings.PROJECT_NAME)
