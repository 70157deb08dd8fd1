"""
geofw.utils.logger
~~~~~~~~~~~~~~~~~~

Light-weight wrapper around :pymod:`logging` that provides:

* ISO-8601 timestamps in UTC, matching the UTC schedule of the refresh job.
* Coloured level names on the console when stderr is a TTY.
* Optional file logging with rotation.
* A single public helper – :pyfunc:`setup` – called once from
  :pyfile:`geofw.main`.

Typical usage
-------------

>>> from geofw.utils.logger import setup, get_logger
>>> setup(level="DEBUG", logfile="logs/geofw.log")
>>> log = get_logger(__name__)
>>> log.info("Logger ready")

Environment variable overrides
------------------------------
* ``GEOFW_LOG_LEVEL`` – Default level (DEBUG, INFO …).
* ``GEOFW_LOG_FILE`` – If set, write logs to this path in addition to
  the console.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

# --------------------------------------------------------------------------- #
# Internal helpers
# --------------------------------------------------------------------------- #


class _UTCFormatter(logging.Formatter):
    """Formatter that renders record timestamps in UTC."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.fromtimestamp(record.created, timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="seconds")


_COLOURS = {
    "DEBUG": 37,  # White
    "INFO": 32,  # Green
    "WARNING": 33,  # Yellow
    "ERROR": 31,  # Red
    "CRITICAL": 41,  # Red background
}


class _ColourHandler(logging.StreamHandler):
    """StreamHandler that colours the levelname when writing to a terminal."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        isatty = getattr(self.stream, "isatty", None)
        if not (isatty and isatty()):
            return super().format(record)
        original = record.levelname
        record.levelname = f"\033[{_COLOURS.get(original, 37)}m{original}\033[0m"
        try:
            return super().format(record)
        finally:
            record.levelname = original


# --------------------------------------------------------------------------- #
# Public API
# --------------------------------------------------------------------------- #

_ROOT_NAME = "geofw"
_DEFAULT_LEVEL = os.getenv("GEOFW_LOG_LEVEL", "INFO").upper()
_DEFAULT_FILE = os.getenv("GEOFW_LOG_FILE")

_configured = False


def setup(
    *,
    level: str | int = _DEFAULT_LEVEL,
    logfile: str | os.PathLike | None = _DEFAULT_FILE,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> None:
    """
    Configure the ``geofw`` logger the first time it is called.

    Parameters
    ----------
    level:
        Minimum log level.
    logfile:
        Optional path to a rotating log file.  If ``None`` console only.
    max_bytes:
        Maximum size per log file before rotation.
    backup_count:
        Number of rotated log files to keep.
    force:
        If *True*, drop existing handlers and reconfigure (mainly for tests).
    """
    global _configured
    if _configured and not force:
        return

    root = logging.getLogger(_ROOT_NAME)
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)

    formatter = _UTCFormatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )

    console = _ColourHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if logfile:
        Path(logfile).parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            logfile, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        fh.setLevel(level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    _configured = True
    root.debug("Logger configured (level=%s, file=%s)", level, logfile)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Wrapper around :pyfunc:`logging.getLogger` that keeps every logger under
    the *geofw.* namespace.
    """
    if not name:
        return logging.getLogger(_ROOT_NAME)
    if not name.startswith(_ROOT_NAME):
        name = f"{_ROOT_NAME}.{name}"
    return logging.getLogger(name)
