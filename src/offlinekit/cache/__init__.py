"""Durable response caching for offlinekit.

This package provides :class:`CacheStore`, a partitioned cache that stores
responses on disk using :mod:`diskcache`. Partitions are named per engine
generation and logical class (``offlinekit-v3-images``); entries are keyed by
normalised absolute URL and carry the time they were stored so that the
caching strategies can judge staleness.

The store is owned by :class:`~offlinekit.engine.Engine` and consumed by the
strategies in :mod:`offlinekit.strategies` and by
:class:`~offlinekit.lifecycle.LifecycleManager`.
"""

from offlinekit.cache.store import CacheStore

__all__ = ["CacheStore"]
