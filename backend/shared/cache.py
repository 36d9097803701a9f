"""In-process TTL cache for rarely-changing queue metadata.

Uses cachetools.TTLCache; each process keeps its own instances. Only
metadata that is explicitly invalidated on write should go through here,
never queue items (positions change on every drop decision).
"""

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Distinguishes "not cached" from a cached falsy value
_MISSING = object()

F = TypeVar("F", bound=Callable[..., Any])


class AsyncTTLCache:
    """TTL cache with one asyncio.Lock per key to collapse concurrent misses."""

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self._maxsize = maxsize
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
            # Drop locks of keys that are not cached
            if len(self._locks) > self._maxsize * 2:
                for k in list(self._locks):
                    if k != key and k not in self._cache and not self._locks[k].locked():
                        del self._locks[k]
        return lock

    def get(self, key: str) -> Any:
        """Return cached value or ``_MISSING``."""
        return self._cache.get(key, _MISSING)

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = value

    def invalidate(self, key: str) -> None:
        self._cache.pop(key, None)
        self._locks.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()
        self._locks.clear()

    @property
    def size(self) -> int:
        return len(self._cache)


def cached(cache: AsyncTTLCache, key_func: Callable[..., str]):
    """Cache the result of an async function under ``key_func(*args, **kwargs)``.

    ``None`` results are not cached so that a lookup for a row that does not
    exist yet never masks its later creation.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            cache_key = key_func(*args, **kwargs)

            result = cache.get(cache_key)
            if result is not _MISSING:
                return result

            async with cache._get_lock(cache_key):
                result = cache.get(cache_key)
                if result is not _MISSING:
                    return result

                result = await func(*args, **kwargs)
                if result is not None:
                    cache.set(cache_key, result)
                else:
                    logger.debug("Not caching empty result for %s", cache_key)
                return result

        wrapper.cache = cache  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
