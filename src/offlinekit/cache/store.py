"""Durable, partitioned response storage.

Each cache partition (``offlinekit-v3-api``, ``offlinekit-v3-images``, ...)
is its own :class:`diskcache.Cache` directory under ``<root>/partitions/``,
so a whole partition can be dropped by closing it and removing its
directory. Entries are stored as plain dicts produced from
:class:`~offlinekit.models.CacheEntry` and keyed by normalised absolute URL.

Writes are best-effort: storage errors (quota, corruption, lock timeouts) are
logged and swallowed so that caching can never fail the caller's request.

Eviction is FIFO by insertion. A re-put deletes and re-inserts the key inside
one transaction, which moves it to the newest position, so the entry evicted
when a partition overflows is always the one with the earliest
``stored_at``.

See Also:
    :class:`~offlinekit.models.CachePolicy` -- per-request-class
    ``max_age`` and ``max_entries``.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import diskcache

from offlinekit.models import CacheEntry, FetchResponse

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)


class CacheStore:
    """Named partitions of cached responses on disk.

    Args:
        root: Storage root. Partitions live in ``root / "partitions"``.
        clock: Returns the current time in epoch seconds. Injected by tests
            to simulate the passage of time.

    Example::

        store = CacheStore(tmp_path)
        store.put("offlinekit-v1-api", "https://example.com/api/matches", response)
        entry = store.get("offlinekit-v1-api", "https://example.com/api/matches")
        if entry and store.is_stale(entry, max_age=60):
            ...
    """

    def __init__(
        self,
        root: str | Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root) / "partitions"
        self._root.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._caches: dict[str, diskcache.Cache] = {}

    # ------------------------------------------------------------------ #
    # Entries
    # ------------------------------------------------------------------ #

    def get(self, cache_name: str, key: str) -> Optional[CacheEntry]:
        """Look up *key* in *cache_name*; ``None`` on a miss or storage error."""
        if not self.has_partition(cache_name):
            return None
        try:
            data = self._open(cache_name).get(key)
        except _STORAGE_ERRORS as exc:
            logger.warning("Cache read failed for %s in %s: %s", key, cache_name, exc)
            return None
        if data is None:
            return None
        return CacheEntry.model_validate(data)

    def put(
        self,
        cache_name: str,
        key: str,
        response: FetchResponse,
        max_entries: Optional[int] = None,
    ) -> bool:
        """Store *response* under *key* with ``stored_at = now``.

        If *max_entries* is set and the partition now holds more entries,
        the single oldest entry by insertion order is evicted.

        Returns:
            ``True`` if the entry was written, ``False`` if storage failed
            (the failure is logged, never raised).
        """
        entry = CacheEntry(
            key=key,
            body=response.body,
            headers=dict(response.headers),
            status_code=response.status_code,
            stored_at=self._clock(),
            cache_name=cache_name,
        )
        try:
            cache = self._open(cache_name)
            with cache.transact():
                cache.delete(key)
                cache.set(key, entry.model_dump())
                if max_entries is not None and len(cache) > max_entries:
                    oldest, _ = cache.peekitem(last=False)
                    cache.delete(oldest)
                    logger.debug("Evicted %s from %s", oldest, cache_name)
        except _STORAGE_ERRORS as exc:
            logger.warning("Cache write failed for %s in %s: %s", key, cache_name, exc)
            return False
        return True

    def delete(self, cache_name: str, key: str) -> bool:
        """Remove a single entry. Returns ``True`` if it existed."""
        if not self.has_partition(cache_name):
            return False
        try:
            return bool(self._open(cache_name).delete(key))
        except _STORAGE_ERRORS as exc:
            logger.warning("Cache delete failed for %s in %s: %s", key, cache_name, exc)
            return False

    def match(self, key: str, cache_names: Iterable[str]) -> Optional[CacheEntry]:
        """Return the first entry for *key* found in *cache_names*, in order."""
        for name in cache_names:
            entry = self.get(name, key)
            if entry is not None:
                return entry
        return None

    def keys(self, cache_name: str) -> list[str]:
        """Keys of *cache_name* from oldest to newest."""
        if not self.has_partition(cache_name):
            return []
        try:
            return list(self._open(cache_name))
        except _STORAGE_ERRORS as exc:
            logger.warning("Could not list keys of %s: %s", cache_name, exc)
            return []

    def is_stale(self, entry: CacheEntry, max_age: Optional[float]) -> bool:
        """Return True when *entry* is older than *max_age* seconds.

        An entry with no ``max_age`` is never stale.
        """
        if max_age is None:
            return False
        return self._clock() - entry.stored_at > max_age

    # ------------------------------------------------------------------ #
    # Partitions
    # ------------------------------------------------------------------ #

    def partitions(self) -> list[str]:
        """Names of all partitions present on disk, sorted."""
        return sorted(p.name for p in self._root.iterdir() if p.is_dir())

    def has_partition(self, cache_name: str) -> bool:
        return cache_name in self._caches or (self._root / cache_name).is_dir()

    def ensure_partitions(self, cache_names: Iterable[str]) -> None:
        """Create any of *cache_names* that do not exist yet."""
        for name in cache_names:
            self._open(name)

    def delete_partition(self, cache_name: str) -> bool:
        """Drop a whole partition. Returns ``True`` if it existed."""
        if not self.has_partition(cache_name):
            return False
        cache = self._caches.pop(cache_name, None)
        if cache is not None:
            cache.close()
        shutil.rmtree(self._root / cache_name, ignore_errors=True)
        logger.info("Deleted cache partition %s", cache_name)
        return True

    def delete_partitions_not_in(self, active_names: Iterable[str]) -> list[str]:
        """Drop every partition whose name is not in *active_names*.

        Returns:
            The names of the deleted partitions.
        """
        keep = set(active_names)
        deleted = [name for name in self.partitions() if name not in keep]
        for name in deleted:
            self.delete_partition(name)
        return deleted

    def stats(self) -> dict[str, Any]:
        """Return the storage directory and the entry count of each partition."""
        counts = {}
        for name in self.partitions():
            try:
                counts[name] = len(self._open(name))
            except _STORAGE_ERRORS as exc:
                logger.warning("Could not count entries of %s: %s", name, exc)
                counts[name] = 0
        return {"directory": str(self._root), "partitions": counts}

    def close(self) -> None:
        """Close every open :class:`diskcache.Cache`."""
        for cache in self._caches.values():
            cache.close()
        self._caches.clear()

    def _open(self, cache_name: str) -> diskcache.Cache:
        cache = self._caches.get(cache_name)
        if cache is None:
            cache = diskcache.Cache(str(self._root / cache_name))
            self._caches[cache_name] = cache
        return cache
