"""Logging for the client: console on stderr, a daily file, credentials masked.

Command output goes to stdout, so log records stay on stderr.  Every
handler carries :class:`RedactCredentials`; a bearer token that slips into
a message or an exception never reaches a log line.
"""
from __future__ import annotations

import logging
import os
import re
import sys
from datetime import date
from pathlib import Path

_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_NOISY = ("urllib3", "requests")

_BEARER = re.compile(r"(Bearer\s+)[^\s'\"]+", re.IGNORECASE)
_TOKEN_FIELD = re.compile(r"""(["']?token["']?\s*[:=]\s*["']?)[^\s'",}]+""", re.IGNORECASE)

_configured = False


class RedactCredentials(logging.Filter):
    """Replace bearer tokens and ``token`` fields with ``***``."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _TOKEN_FIELD.sub(r"\1***", _BEARER.sub(r"\1***", message))
        if masked != message:
            record.msg, record.args = masked, None
        return True


def log_file_path(day: date | None = None) -> Path:
    log_dir = Path(os.environ.get("JOBPORTAL_LOG_DIR", "logs")).expanduser()
    return log_dir / f"portal_{(day or date.today()):%Y-%m-%d}.log"


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; configures root handlers on first call."""
    global _configured
    if not _configured:
        _configure()
        _configured = True
    return logging.getLogger(name)


def set_level(level: int) -> None:
    """Change the root level and the console threshold (``--verbose``)."""
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if getattr(handler, "name", None) == "jobportal.console":
            handler.setLevel(level)


def _handler(handler: logging.Handler, name: str, level: int) -> logging.Handler:
    handler.set_name(name)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FMT))
    handler.addFilter(RedactCredentials())
    return handler


def _configure() -> None:
    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)

    if root.handlers:
        return

    root.addHandler(_handler(logging.StreamHandler(sys.stderr), "jobportal.console", level))
    path = log_file_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        # Read-only working directory: console logging only.
        return
    root.addHandler(_handler(file_handler, "jobportal.file", logging.DEBUG))
