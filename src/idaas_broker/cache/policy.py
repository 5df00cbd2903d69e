"""Expiry classification and the read-through refresh algorithm.

Every cached category is governed by two thresholds on remaining validity:

    remaining >= soft           FRESH          served, no network call
    hard <= remaining < soft    SOFT_EXPIRING  renewal attempted; on failure
                                               the cached content is served
    remaining < hard            HARD_EXPIRED   must be renewed; never served

Content whose expiry cannot be determined is HARD_EXPIRED.
"""

from __future__ import annotations

__all__ = [
    "CLOUD_TOKEN_THRESHOLDS",
    "DISCOVERY_THRESHOLDS",
    "OIDC_TOKEN_THRESHOLDS",
    "ExpiryPolicy",
    "ExpiryThresholds",
    "Freshness",
    "ReadThroughCache",
]

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from idaas_broker.cache.locks import KeyLockRegistry
from idaas_broker.cache.store import CacheEntry, CacheStore
from idaas_broker.exceptions import AccessDeniedError, BrokerError, StorageError
from idaas_broker.telemetry.system_logger import get_system_logger

_logger = get_system_logger()


class Freshness(Enum):
    """Classification of a cached entry, computed once per read."""

    FRESH = "fresh"
    SOFT_EXPIRING = "soft_expiring"
    HARD_EXPIRED = "hard_expired"


@dataclass(frozen=True)
class ExpiryThresholds:
    """Soft and hard thresholds on remaining validity, in seconds."""

    soft_seconds: float
    hard_seconds: float

    def __post_init__(self) -> None:
        if not 0 <= self.hard_seconds <= self.soft_seconds:
            raise ValueError("Expiry thresholds must satisfy 0 <= hard <= soft")


CLOUD_TOKEN_THRESHOLDS = ExpiryThresholds(soft_seconds=20 * 60, hard_seconds=3 * 60)
OIDC_TOKEN_THRESHOLDS = ExpiryThresholds(soft_seconds=10 * 60, hard_seconds=2 * 60)
DISCOVERY_THRESHOLDS = ExpiryThresholds(soft_seconds=24 * 3600, hard_seconds=3600)


@dataclass(frozen=True)
class ExpiryPolicy:
    """Classifies cache entries of one category.

    Attributes:
        thresholds: Soft/hard pair for the category.
        expires_at: Returns the absolute expiry (Unix seconds) of an entry,
            or None when the content does not carry a usable expiry.
    """

    thresholds: ExpiryThresholds
    expires_at: Callable[[CacheEntry], float | None]

    def classify(self, entry: CacheEntry, now: float | None = None) -> Freshness:
        expiry = self.expires_at(entry)
        if expiry is None:
            return Freshness.HARD_EXPIRED
        remaining = expiry - (time.time() if now is None else now)
        if remaining < self.thresholds.hard_seconds:
            return Freshness.HARD_EXPIRED
        if remaining < self.thresholds.soft_seconds:
            return Freshness.SOFT_EXPIRING
        return Freshness.FRESH


class ReadThroughCache:
    """Serves cached content or fetches, writes back and returns new content.

    The per-key lock is held across read, decide, fetch and write, so at
    most one upstream fetch per (category, key) is in flight. Waiters read
    the entry again after acquiring the lock and usually find it fresh.
    """

    def __init__(self, store: CacheStore, locks: KeyLockRegistry) -> None:
        self._store = store
        self._locks = locks

    @property
    def store(self) -> CacheStore:
        return self._store

    def read(self, category: str, key: str) -> CacheEntry | None:
        """Read an entry, treating an undecryptable record as a miss.

        Raises:
            StorageError: On I/O failure or a corrupted record.
        """
        try:
            return self._store.get(category, key)
        except StorageError as e:
            if not e.recoverable:
                raise
            _logger.warning(
                {
                    "event": "cache_record_unreadable",
                    "message": f"Ignoring unreadable cache record {category}/{key}: {e}",
                    "category": category,
                    "key": key,
                }
            )
            return None

    def get_or_fetch(
        self,
        category: str,
        key: str,
        policy: ExpiryPolicy,
        fetch: Callable[[], str],
        *,
        force_new: bool = False,
    ) -> CacheEntry:
        """Return valid content for (category, key).

        Args:
            category: Cache category.
            key: Cache key.
            policy: Expiry policy for the category.
            fetch: Produces new JSON content; raises on failure.
            force_new: Skip the cache and always fetch.

        Returns:
            The cached or newly fetched entry.

        Raises:
            BrokerError: Whatever fetch() raised, when no servable entry exists.
        """
        with self._locks.hold(category, key):
            if force_new:
                return self._fetch_and_put(category, key, fetch)

            entry = self.read(category, key)
            if entry is None:
                _logger.debug({"event": "cache_miss", "message": f"Cache miss {category}/{key}"})
                return self._fetch_and_put(category, key, fetch)

            freshness = policy.classify(entry)
            match freshness:
                case Freshness.FRESH:
                    _logger.debug({"event": "cache_hit", "message": f"Cache hit {category}/{key}"})
                    return entry
                case Freshness.HARD_EXPIRED:
                    _logger.debug(
                        {"event": "cache_hard_expired", "message": f"Cache entry expired {category}/{key}"}
                    )
                    return self._fetch_and_put(category, key, fetch)
                case Freshness.SOFT_EXPIRING:
                    return self._renew_or_keep(entry, fetch)
                case _:
                    assert_never(freshness)

    def _fetch_and_put(self, category: str, key: str, fetch: Callable[[], str]) -> CacheEntry:
        content = fetch()
        return self._store.put(category, key, content)

    def _renew_or_keep(self, entry: CacheEntry, fetch: Callable[[], str]) -> CacheEntry:
        try:
            content = fetch()
        except AccessDeniedError:
            raise
        except BrokerError as e:
            _logger.warning(
                {
                    "event": "cache_soft_refresh_failed",
                    "message": f"Renewal of {entry.category}/{entry.key} failed, serving cached content: {e}",
                    "category": entry.category,
                    "key": entry.key,
                    "error_type": type(e).__name__,
                }
            )
            return entry
        return self._store.put(entry.category, entry.key, content)
