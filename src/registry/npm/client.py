"""NPM registry client: published version lists per package."""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, Timer, safe_url
from versioning.cache import VersionCache
from versioning.models import VersionListing
from versioning.ranges import sort_versions_desc

logger = logging.getLogger(__name__)


class NpmRegistryClient:
    """Fetches and caches the versions published for a package.

    Lookups never raise: failures come back as a ``VersionListing`` with
    ``error`` set and no versions. Successful lookups are cached in the
    injected ``VersionCache``; concurrent lookups of the same uncached name
    share one request.
    """

    def __init__(
        self,
        base_url: str = Constants.REGISTRY_URL_NPM,
        cache: Optional[VersionCache] = None,
        timeout: float = Constants.REQUEST_TIMEOUT,
        retries: int = Constants.HTTP_RETRY_MAX,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the registry client.

        Args:
            base_url: Registry base URL.
            cache: Shared version cache; a private one is created if omitted.
            timeout: Per-request timeout in seconds.
            retries: Attempts per lookup on timeouts, connection errors and 5xx.
            session: Optional pre-built session (not closed by ``stop``).
        """
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._cache = cache if cache is not None else VersionCache()
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retries = max(1, int(retries))
        self._session = session
        self._owns_session = session is None
        self._inflight: Dict[str, asyncio.Future] = {}
        self._headers = {
            "Accept": "application/json",
            "User-Agent": Constants.USER_AGENT,
        }

    @property
    def cache(self) -> VersionCache:
        return self._cache

    @property
    def base_url(self) -> str:
        return self._base_url

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

    async def stop(self) -> None:
        """Stop the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "NpmRegistryClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def package_url(self, name: str) -> str:
        """Build the packument URL; scoped names keep ``@`` and encode ``/``."""
        return self._base_url + urllib.parse.quote(name, safe="@")

    async def list_versions(self, name: str) -> List[str]:
        """Published versions of ``name``, highest first; empty on any failure."""
        listing = await self.fetch(name)
        return listing.versions

    async def fetch(self, name: str) -> VersionListing:
        """Look up ``name``, serving from cache when possible."""
        cached = self._cache.get(name)
        if cached is not None:
            return VersionListing(name=name, versions=cached)

        pending = self._inflight.get(name)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch_uncached(name))
            self._inflight[name] = pending
            pending.add_done_callback(lambda _f, key=name: self._inflight.pop(key, None))
        return await asyncio.shield(pending)

    async def _fetch_uncached(self, name: str) -> VersionListing:
        url = self.package_url(name)
        safe_target = safe_url(url)
        last_error = "no attempt made"

        for attempt in range(self._retries):
            if attempt:
                await asyncio.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
            with Timer() as t:
                try:
                    if is_debug_enabled(logger):
                        logger.debug(
                            "HTTP request",
                            extra=extra_context(
                                event="http_request",
                                component="registry_client",
                                action="GET",
                                target=safe_target,
                                attempt=attempt + 1,
                            ),
                        )
                    status, payload = await self._get_json(url)
                except asyncio.TimeoutError:
                    last_error = "timeout"
                    logger.debug("Registry lookup for %s timed out (attempt %d)", name, attempt + 1)
                    continue
                except aiohttp.ClientError as exc:
                    last_error = f"connection error: {exc}"
                    logger.debug("Registry lookup for %s failed (attempt %d): %s", name, attempt + 1, exc)
                    continue

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="registry_client",
                        action="GET",
                        status_code=status,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                    ),
                )

            if status >= 500:
                last_error = f"HTTP {status}"
                continue
            if not 200 <= status < 300:
                return self._failed(name, f"HTTP {status}")

            versions = _extract_versions(payload)
            if versions is None:
                return self._failed(name, "malformed registry response")

            versions = sort_versions_desc(versions)
            self._cache.set(name, versions)
            return VersionListing(name=name, versions=versions)

        return self._failed(name, last_error)

    def _failed(self, name: str, reason: str) -> VersionListing:
        logger.warning("Could not fetch versions for %s: %s", name, reason)
        return VersionListing(name=name, versions=[], error=reason)

    async def _get_json(self, url: str) -> Tuple[int, Optional[Any]]:
        """GET ``url`` and decode a JSON body; the body is None when undecodable."""
        if self._session is None:
            await self.start()
        assert self._session is not None
        async with self._session.get(url, headers=self._headers, timeout=self._timeout) as response:
            status = response.status
            if not 200 <= status < 300:
                return status, None
            try:
                payload = await response.json(content_type=None)
            except (json.JSONDecodeError, UnicodeDecodeError, aiohttp.ContentTypeError):
                return status, None
        return status, payload


def _extract_versions(payload: Any) -> Optional[List[str]]:
    """Keys of the packument's ``versions`` object, or None if the body is malformed."""
    if not isinstance(payload, dict):
        return None
    versions = payload.get("versions", {})
    if not isinstance(versions, dict):
        return None
    return list(versions.keys())
