"""
Thread-safe TTL cache for expensive per-device lookups.

Entries are stamped when they are stored and judged fresh at read time
against the TTL of that lookup: an entry is valid while
``clock() - recorded_at < ttl``. Expired entries are dropped lazily when the
same key is looked up again (or by an explicit ``cleanup_expired()``); there
is no background sweep.

Concurrent misses for the same key are not de-duplicated. Each caller that
misses runs ``compute`` and stores its own result, and the last writer wins.
Reads and writes of the stored entry are serialized by a single lock per
cache, so no reader ever observes a partially written entry.

Example:
    pid_cache: TTLCache[tuple[str, str], int] = TTLCache(ttl=3.0)

    pid = pid_cache.get_or_compute(
        ("emulator-5554", "com.example.app"),
        lambda: lookup_pid("emulator-5554", "com.example.app"),
    )
"""

import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

from devicemesh.config.logging_config import get_logger
from devicemesh.errors import ConfigurationError

log = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the clock reading at which it was stored."""

    value: V
    recorded_at: float


class TTLCache(Generic[K, V]):
    """
    Key to value mapping with time-to-live expiry on read.

    Example:
        versions: TTLCache[str, float] = TTLCache(ttl=3600.0)

        version = versions.get_or_compute("emulator-5554", read_os_version)
        versions.invalidate("emulator-5554")
    """

    def __init__(
        self,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        name: str | None = None,
    ):
        """
        Initialize the cache.

        Args:
            ttl: Default time-to-live in seconds for lookups that pass none.
            clock: Monotonic time source; tests inject a fake one.
            name: Label used in log messages.

        Raises:
            ConfigurationError: If ttl is not positive.
        """
        self._default_ttl = self._check_ttl(ttl)
        self._clock = clock
        self._name = name or "ttl-cache"
        self._cache: dict[K, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    @staticmethod
    def _check_ttl(ttl: float) -> float:
        if ttl is None or ttl <= 0:
            raise ConfigurationError("ttl must be > 0")
        return ttl

    @staticmethod
    def _check_key(key: K) -> None:
        try:
            hash(key)
        except TypeError:
            raise ConfigurationError(f"Cache key must be hashable, got {type(key).__name__}") from None

    def _is_fresh(self, entry: CacheEntry[V], ttl: float) -> bool:
        return self._clock() - entry.recorded_at < ttl

    def _lookup(self, key: K, ttl: float) -> CacheEntry[V] | None:
        """Return the fresh entry for key, dropping it if expired. Caller holds the lock."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry, ttl):
            del self._cache[key]
            return None
        return entry

    def get_or_compute(
        self,
        key: K,
        compute: Callable[[], V],
        ttl: float | None = None,
    ) -> V:
        """
        Get value from cache or compute it if not present/expired.

        ``compute`` runs outside the lock. A failing ``compute`` stores
        nothing, so the next call for the key computes again.

        Args:
            key: Cache key.
            compute: Zero-argument function producing the value.
            ttl: Maximum age in seconds of a usable entry. Uses the default if None.

        Returns:
            Cached or computed value.

        Raises:
            ConfigurationError: If the key is unhashable or ttl is not positive.
            Exception: Whatever ``compute`` raises, unchanged.
        """
        self._check_key(key)
        ttl = self._default_ttl if ttl is None else self._check_ttl(ttl)

        with self._lock:
            entry = self._lookup(key, ttl)
        if entry is not None:
            log.debug(f"{self._name}: cache hit for {key!r}")
            return entry.value

        log.debug(f"{self._name}: cache miss for {key!r}")
        value = compute()

        with self._lock:
            self._cache[key] = CacheEntry(value=value, recorded_at=self._clock())
        return value

    def get(self, key: K, default: V | None = None, ttl: float | None = None) -> V | None:
        """
        Get a value from the cache.

        Args:
            key: Cache key.
            default: Value to return if key not found or expired.
            ttl: Maximum age in seconds. Uses the default if None.

        Returns:
            Cached value or default.
        """
        self._check_key(key)
        ttl = self._default_ttl if ttl is None else self._check_ttl(ttl)
        with self._lock:
            entry = self._lookup(key, ttl)
        return default if entry is None else entry.value

    def set(self, key: K, value: V) -> None:
        """Store a value, replacing any existing entry for the key."""
        self._check_key(key)
        with self._lock:
            self._cache[key] = CacheEntry(value=value, recorded_at=self._clock())

    def has_fresh(self, key: K, ttl: float | None = None) -> bool:
        """Check if key exists and is not expired."""
        self._check_key(key)
        ttl = self._default_ttl if ttl is None else self._check_ttl(ttl)
        with self._lock:
            return self._lookup(key, ttl) is not None

    def invalidate(self, key: K) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if key was in cache, False otherwise.
        """
        self._check_key(key)
        with self._lock:
            return self._cache.pop(key, None) is not None

    def keys(self) -> list[K]:
        """Snapshot of the stored keys, including expired ones not yet dropped."""
        with self._lock:
            return list(self._cache)

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()

    def cleanup_expired(self) -> int:
        """
        Remove all entries older than the default TTL.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            expired_keys = [
                key for key, entry in self._cache.items() if not self._is_fresh(entry, self._default_ttl)
            ]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    @property
    def size(self) -> int:
        """Return the number of stored entries, including expired ones not yet dropped."""
        with self._lock:
            return len(self._cache)

    def stats(self) -> dict[str, object]:
        """
        Get cache statistics.

        Returns:
            Dictionary with size, expired count and default ttl.
        """
        with self._lock:
            expired = sum(1 for entry in self._cache.values() if not self._is_fresh(entry, self._default_ttl))
            return {
                "name": self._name,
                "size": len(self._cache),
                "expired": expired,
                "ttl": self._default_ttl,
            }


__all__ = ["CacheEntry", "TTLCache"]
