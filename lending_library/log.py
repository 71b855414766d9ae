"""
Logging setup for the web service and the CLI.

Level and request tracing come from settings (LOG_LEVEL, LIBRARY_TRACE).
Request traces carry method, URL and body size; bodies are never logged.
"""

import logging
import sys
from typing import Optional

from lending_library.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Logger used by the request trace middleware
TRACE_LOGGER = "lending_library.trace"


def log_level(name: Optional[str] = None) -> int:
    """Return the numeric level for name, falling back to INFO when unknown."""
    level = logging.getLevelName((name or settings.log_level).upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[str] = None, trace: Optional[bool] = None) -> None:
    """Send all library logs to stdout.

    With trace on, request traces are shown even when the level is above INFO;
    with trace off they are dropped.
    """
    trace = settings.trace if trace is None else trace
    logging.basicConfig(
        level=log_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger(TRACE_LOGGER).setLevel(logging.INFO if trace else logging.CRITICAL)

    # the request trace replaces uvicorn's access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
