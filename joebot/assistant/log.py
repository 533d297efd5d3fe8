"""Process logging on top of loguru.

Two sinks share stderr: regular service logs and ``[AUDIT]`` lines, one JSON
document per executed command.  Records from stdlib loggers (uvicorn, httpx,
psycopg, websockets, and the library modules of this package) are routed into
loguru so everything ends up in one stream.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

_SERVICE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> "
    "<level>{level: <7}</level> "
    "<cyan>{name}:{line}</cyan> "
    "<level>{message}</level>"
)
_AUDIT_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> <magenta>[AUDIT]</magenta> {message}"

_NOISY = ("uvicorn.access", "httpx", "httpcore", "websockets", "psycopg.pool")


def _is_audit(record) -> bool:
    return bool(record["extra"].get("audit"))


class StdlibBridge(logging.Handler):
    """Forward stdlib ``logging`` records to loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # skip logging's own frames
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, debug: bool = False) -> None:
    """Install the service and audit sinks and take over stdlib logging.

    ``debug`` is ``app.debug`` from the YAML config; it forces DEBUG
    regardless of ``JOE_LOG_LEVEL``.
    """
    level = "DEBUG" if debug else level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=_SERVICE_FORMAT, filter=lambda r: not _is_audit(r))
    logger.add(sys.stderr, level="INFO", format=_AUDIT_FORMAT, filter=_is_audit)

    logging.basicConfig(handlers=[StdlibBridge()], level=0, force=True)
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Log level set to {}", level)


def audit(record: str) -> None:
    """Emit one audit line (a JSON document)."""
    logger.bind(audit=True).info(record)
