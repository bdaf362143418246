"""Shared HTTP helpers used by the registry client.

Encapsulates retry/backoff and status classification so callers only deal
with a successful response or a RegistryError. This module is dependency-light
and imports nothing from registry/* to avoid cycles.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from ..constants import Constants
from ..errors import RegistryError, RegistryErrorKind
from .logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


def build_session() -> requests.Session:
    """Create a pooled session shared by all requests of one run."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=Constants.HTTP_POOL_SIZE,
        pool_maxsize=max(Constants.HTTP_POOL_SIZE, Constants.INSTALL_MAX_WORKERS),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = Constants.USER_AGENT
    return session


def backoff_delay(attempt: int) -> float:
    """Exponential backoff delay before retry number `attempt` (0-based)."""
    return Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** attempt)


def robust_get(
    session: requests.Session,
    url: str,
    *,
    context: str,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any,
) -> requests.Response:
    """GET with bounded retries; returns a 2xx response or raises RegistryError.

    Timeouts, connection errors and retryable statuses are retried up to
    Constants.HTTP_RETRY_MAX attempts. A 404 is raised as NOT_FOUND right away
    and other non-2xx statuses as INVALID_RESPONSE.
    """
    safe_target = safe_url(url)
    last_problem = "no attempt made"

    for attempt in range(Constants.HTTP_RETRY_MAX):
        if attempt:
            time.sleep(backoff_delay(attempt - 1))
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                        context=context,
                        attempt=attempt + 1,
                    ),
                )
            try:
                response = session.get(
                    url,
                    timeout=Constants.REQUEST_TIMEOUT,
                    headers=headers,
                    **kwargs,
                )
            except requests.Timeout:
                last_problem = f"timed out after {Constants.REQUEST_TIMEOUT} seconds"
                logger.debug(
                    "HTTP timeout",
                    extra=extra_context(
                        event="http_exception",
                        component="http_client",
                        action="GET",
                        outcome="timeout",
                        attempt=attempt + 1,
                        target=safe_target,
                    ),
                )
                continue
            except requests.RequestException as exc:  # includes ConnectionError
                last_problem = str(exc)
                logger.debug(
                    "HTTP request exception",
                    extra=extra_context(
                        event="http_exception",
                        component="http_client",
                        action="GET",
                        outcome="request_exception",
                        attempt=attempt + 1,
                        target=safe_target,
                    ),
                )
                continue

        status = response.status_code
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    status_code=status,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )

        if 200 <= status < 300:
            return response
        response.close()
        if status == 404:
            raise RegistryError(
                RegistryErrorKind.NOT_FOUND,
                f"{context}: not found ({safe_target})",
                url=url,
                status_code=status,
            )
        if status in RETRYABLE_STATUS:
            last_problem = f"HTTP {status}"
            continue
        raise RegistryError(
            RegistryErrorKind.INVALID_RESPONSE,
            f"{context}: unexpected status {status} ({safe_target})",
            url=url,
            status_code=status,
        )

    logger.warning(
        "%s request failed after %s attempts: %s",
        context,
        Constants.HTTP_RETRY_MAX,
        last_problem,
    )
    raise RegistryError(
        RegistryErrorKind.NETWORK,
        f"{context}: request failed after {Constants.HTTP_RETRY_MAX} attempts: {last_problem}",
        url=url,
    )
