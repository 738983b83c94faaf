"""
Logging setup for Kader Learn.

A rotating file handler plus a console handler, both stamped with the id of
the HTTP request being served.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import settings


REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = (
    "%(asctime)s %(levelname)-8s %(name)s "
    "request_id=%(request_id)s %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.request_id = REQUEST_ID.get("-")
        return True


def _parse_level(level: str) -> int:
    numeric = logging.getLevelName((level or "INFO").upper())
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    log_dir: Optional[str] = None,
    log_file: Optional[str] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Attach file and console handlers to the ``kaderlearn`` logger.

    Idempotent: safe to call multiple times. The file handler is skipped
    while ``settings.TESTING`` is on.
    """
    logger = logging.getLogger("kaderlearn")
    if getattr(logger, "_configured", False):
        return logger

    numeric_level = _parse_level(level or settings.LOG_LEVEL)
    logger.setLevel(numeric_level)
    logger.propagate = False

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    request_filter = RequestIdFilter()

    if not settings.TESTING:
        directory = Path(log_dir or settings.LOG_DIR)
        directory.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            filename=str(directory / (log_file or settings.LOG_FILE)),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=10,
            encoding="utf-8",
        )
        fh.setLevel(numeric_level)
        fh.setFormatter(formatter)
        fh.addFilter(request_filter)
        logger.addHandler(fh)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(numeric_level)
    ch.setFormatter(formatter)
    ch.addFilter(request_filter)
    logger.addHandler(ch)

    logger._configured = True  # type: ignore[attr-defined]
    return logger


def set_request_id(request_id: Optional[str] = None) -> str:
    rid = request_id or str(uuid.uuid4())
    REQUEST_ID.set(rid)
    return rid


def clear_request_id() -> None:
    REQUEST_ID.set("-")
