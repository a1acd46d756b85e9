"""Process-scoped cache of published version lists."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class CacheEntry:
    """A single cached version list."""

    versions: List[str]
    created_at: float = field(default_factory=time.time)


class VersionCache:
    """Version lists keyed by package name.

    Entries never expire: a run is short enough that published versions are
    treated as stable. One instance is created per run and handed to the
    registry client. Access is guarded by a lock so the cache can be shared
    between tasks and threads.
    """

    def __init__(self) -> None:
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, name: str) -> Optional[List[str]]:
        """Get a cached version list.

        Args:
            name: Package name.

        Returns:
            A copy of the cached list or None if not cached.
        """
        with self._lock:
            entry = self._cache.get(name)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return list(entry.versions)

    def set(self, name: str, versions: List[str]) -> None:
        """Cache the version list for ``name``."""
        with self._lock:
            self._cache[name] = CacheEntry(versions=list(versions))

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._cache

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "total_entries": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
            }
