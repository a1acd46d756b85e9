"""Read-through cache for parsed package.json files."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from typing import Dict

from versioning.models import Manifest
from .errors import ManifestReadError

logger = logging.getLogger(__name__)


def read_manifest(path: str) -> Manifest:
    """Parse one package.json.

    Raises:
        ManifestReadError: If the file is missing, unreadable, not JSON, or
            not a JSON object.
    """
    try:
        with open(path, "r", encoding="utf-8") as file:
            data = json.load(file)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestReadError(path, cause=e) from e
    if not isinstance(data, dict):
        raise ManifestReadError(path, message="top-level value is not an object")
    return data


class ManifestCache:
    """Parsed manifests keyed by absolute path.

    Each file is read at most once per run; callers share the returned
    mapping by reference and must not modify it.
    """

    def __init__(self) -> None:
        self._cache: Dict[str, Manifest] = {}
        self._lock = threading.Lock()

    def get(self, path: str) -> Manifest:
        """Return the parsed manifest at ``path``, reading it on first use."""
        key = os.path.abspath(path)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        logger.debug("Reading manifest %s", key)
        manifest = read_manifest(key)
        with self._lock:
            # Another reader may have won the race; keep the first copy.
            return self._cache.setdefault(key, manifest)

    async def aget(self, path: str) -> Manifest:
        """Async variant of ``get`` running the file read off the event loop."""
        key = os.path.abspath(path)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        return await asyncio.to_thread(self.get, key)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return os.path.abspath(path) in self._cache
