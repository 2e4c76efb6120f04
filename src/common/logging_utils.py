"""Centralized logging helpers.

Every module logs through the standard library with a module-level logger.
DEBUG traces attach a structured context via ``extra=extra_context(...)``;
the formatter renders that context as trailing ``key=value`` pairs so the
human-readable message stays first.
"""
from __future__ import annotations

import logging
import os
import sys
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

_CONTEXT_ATTR = "kegplan_context"
_HANDLER_NAME = "kegplan-console"


class ContextFormatter(logging.Formatter):
    """Formatter that appends the structured context of a record."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = getattr(record, _CONTEXT_ATTR, None)
        if not context:
            return base
        pairs = " ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        return f"{base} {pairs}" if pairs else base


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a structured log call.

    Common keys are ``event``, ``component``, ``action``, ``outcome`` and
    ``target``; any other keyword is carried along unchanged.
    """
    return {_CONTEXT_ATTR: dict(fields)}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records of ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def configure_logging(level: Optional[str] = None, logfile: Optional[str] = None) -> None:
    """Install the console handler (and optionally a file handler) on the root logger.

    Safe to call more than once; handlers are only added the first time.
    """
    root = logging.getLogger()
    level_name = str(level or os.environ.get("KEGPLAN_LOG_LEVEL") or Constants.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    formatter = ContextFormatter(Constants.LOG_FORMAT)
    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if logfile:
        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s " + Constants.LOG_FORMAT))
        root.addHandler(file_handler)


def safe_url(url: str) -> str:
    """Strip credentials, query and fragment from a URL before it is logged."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, host, parts.path, "", ""))


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
