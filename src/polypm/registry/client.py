"""Registry client: package metadata and tarball bytes."""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Dict, Optional
from urllib.parse import quote

import requests

from ..common.http_client import backoff_delay, build_session, robust_get
from ..common.logging_utils import extra_context, is_debug_enabled, safe_url
from ..constants import Constants
from ..errors import RegistryError, RegistryErrorKind
from .models import PackageMetadata

logger = logging.getLogger(__name__)

PACKUMENT_HEADERS = {
    "Accept": "application/json",
}


def escape_name(name: str) -> str:
    """Escape a package name for use as a registry path segment.

    Scoped names keep their leading "@" and encode the slash: "@scope%2Fpkg".
    """
    if name.startswith("@"):
        return "@" + quote(name[1:], safe="")
    return quote(name, safe="")


class RegistryClient:
    """Stateless-per-request client for an npm-compatible registry.

    Metadata is cached for the lifetime of the instance, which callers scope
    to a single resolution run.
    """

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None):
        base = base_url or Constants.REGISTRY_URL
        self.base_url = base if base.endswith("/") else base + "/"
        self._session = session or build_session()
        self._cache: Dict[str, PackageMetadata] = {}
        self._cache_lock = threading.Lock()

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()

    def __enter__(self) -> "RegistryClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch_metadata(self, name: str) -> PackageMetadata:
        """Fetch every published version of `name` with its dependency ranges.

        Raises:
            ValueError: if name is empty.
            RegistryError: NOT_FOUND, NETWORK or INVALID_RESPONSE.
        """
        if not name or not name.strip():
            raise ValueError("package name must be non-empty")
        with self._cache_lock:
            cached = self._cache.get(name)
        if cached is not None:
            if is_debug_enabled(logger):
                logger.debug(
                    "Metadata cache hit",
                    extra=extra_context(event="cache_hit", component="registry", package=name),
                )
            return cached

        url = self.base_url + escape_name(name)
        try:
            response = robust_get(self._session, url, context=f"metadata {name}", headers=PACKUMENT_HEADERS)
        except RegistryError as exc:
            exc.name = name
            raise

        try:
            metadata = PackageMetadata.from_packument(name, json.loads(response.text))
        except (json.JSONDecodeError, ValueError) as exc:
            logger.warning("Malformed metadata for %s: %s", name, exc)
            raise RegistryError(
                RegistryErrorKind.INVALID_RESPONSE,
                f"malformed metadata for {name}: {exc}",
                name=name,
                url=url,
            ) from exc

        logger.debug("Fetched metadata for %s (%d versions)", name, len(metadata.versions))
        with self._cache_lock:
            self._cache.setdefault(name, metadata)
            return self._cache[name]

    def fetch_tarball(self, url: str, *, name: Optional[str] = None) -> bytes:
        """Download tarball bytes, bounded by Constants.MAX_TARBALL_BYTES.

        A body stream that breaks mid-download re-issues the GET, up to
        Constants.HTTP_RETRY_MAX attempts with the same backoff as robust_get.
        """
        context = f"tarball {name}" if name else "tarball"
        last_problem = "no attempt made"
        for attempt in range(Constants.HTTP_RETRY_MAX):
            if attempt:
                time.sleep(backoff_delay(attempt - 1))
            try:
                response = robust_get(self._session, url, context=context, stream=True)
            except RegistryError as exc:
                exc.name = name
                raise
            try:
                data = self._read_body(response, url, name=name, context=context)
            except requests.RequestException as exc:
                last_problem = str(exc)
                logger.debug(
                    "Tarball stream interrupted",
                    extra=extra_context(
                        event="http_exception",
                        component="registry",
                        outcome="stream_interrupted",
                        attempt=attempt + 1,
                        package=name,
                        target=safe_url(url),
                    ),
                )
                continue
            logger.debug("Downloaded %s (%d bytes) from %s", name or "tarball", len(data), safe_url(url))
            return data

        logger.warning("%s download failed after %s attempts: %s", context, Constants.HTTP_RETRY_MAX, last_problem)
        raise RegistryError(
            RegistryErrorKind.NETWORK,
            f"{context}: download interrupted after {Constants.HTTP_RETRY_MAX} attempts: {last_problem}",
            name=name,
            url=url,
        )

    @staticmethod
    def _read_body(response: requests.Response, url: str, *, name: Optional[str], context: str) -> bytes:
        chunks = []
        size = 0
        try:
            for chunk in response.iter_content(chunk_size=64 * 1024):
                size += len(chunk)
                if size > Constants.MAX_TARBALL_BYTES:
                    raise RegistryError(
                        RegistryErrorKind.INVALID_RESPONSE,
                        f"{context}: exceeds {Constants.MAX_TARBALL_BYTES} bytes",
                        name=name,
                        url=url,
                    )
                chunks.append(chunk)
        finally:
            response.close()
        return b"".join(chunks)

    def tarball_url(self, name: str, version: str) -> str:
        """Conventional tarball location: <base>/<name>/-/<basename>-<version>.tgz."""
        basename = name.rsplit("/", 1)[-1]
        return f"{self.base_url}{name}/-/{basename}-{version}.tgz"
