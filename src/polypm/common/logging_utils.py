"""Centralized logging helpers: configuration, structured context and redaction."""

from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from ..constants import Constants

_CONFIGURED = False

_SENSITIVE_QUERY_KEYS = ("token", "key", "secret", "password", "auth", "signature")
_BEARER_RE = re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*")
_NPM_TOKEN_RE = re.compile(r"npm_[A-Za-z0-9]{20,}")


def configure_logging() -> None:
    """Configure the root logger once, honoring POLYPM_LOG_LEVEL."""
    global _CONFIGURED  # pylint: disable=global-statement
    level_name = os.environ.get(Constants.ENV_LOG_LEVEL, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not _CONFIGURED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
        _CONFIGURED = True
    root.setLevel(level)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from logger would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an `extra=` payload, dropping unset fields."""
    return {k: v for k, v in fields.items() if v is not None}


def redact(text: Optional[str]) -> str:
    """Mask bearer tokens and npm access tokens in free text."""
    if not text:
        return ""
    text = _BEARER_RE.sub(r"\1[REDACTED]", text)
    return _NPM_TOKEN_RE.sub("[REDACTED]", text)


def safe_url(url: Optional[str]) -> str:
    """Return url with userinfo and sensitive query values redacted."""
    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return redact(url)
    netloc = parts.netloc
    if "@" in netloc:
        netloc = "[REDACTED]@" + netloc.rsplit("@", 1)[1]
    query = parts.query
    if query:
        pairs = []
        for pair in query.split("&"):
            key, sep, value = pair.partition("=")
            if sep and any(s in key.lower() for s in _SENSITIVE_QUERY_KEYS):
                value = "[REDACTED]"
            pairs.append(f"{key}{sep}{value}")
        query = "&".join(pairs)
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds; live value while the block is still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000, 2)
