"""Centralized logging helpers.

Every module logs through ``logging.getLogger(__name__)``; this module owns
the one-time root configuration plus the small helpers used to attach
structured context to DEBUG events without paying for it when DEBUG is off.
"""
from __future__ import annotations

import logging
import os
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

_CONFIGURED = False


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger once.

    Args:
        level: Level name; falls back to the PEERDEPS_LOG_LEVEL environment
            variable, then INFO.
        log_file: Optional path for an additional file handler.
    """
    global _CONFIGURED  # pylint: disable=global-statement
    root = logging.getLogger()
    level_name = (level or os.environ.get(Constants.LOG_LEVEL_ENV) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)

    if not _CONFIGURED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
        _CONFIGURED = True
    root.setLevel(level_value)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        root.addHandler(file_handler)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` mapping for structured log records.

    None values are dropped so callers can pass optional fields freely.
    """
    return {k: v for k, v in fields.items() if v is not None}


def redact(value: Optional[str]) -> str:
    """Mask a secret, keeping nothing but a marker."""
    if not value:
        return ""
    return "[REDACTED]"


def safe_url(url: str) -> str:
    """Strip credentials and auth-looking query values from a URL for logging."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc
    if "@" in netloc:
        netloc = f"{redact('x')}@{netloc.rsplit('@', 1)[1]}"
    query = parts.query
    if query:
        pairs = urllib.parse.parse_qsl(query, keep_blank_values=True)
        masked = [
            (k, redact(v) if k.lower() in ("token", "auth", "_auth", "password") else v)
            for k, v in pairs
        ]
        query = urllib.parse.urlencode(masked)
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds; still running timers report time so far."""
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
