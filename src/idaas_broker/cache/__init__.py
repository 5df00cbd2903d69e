"""Encrypted credential cache with expiry-aware read-through."""

from __future__ import annotations

__all__ = [
    "CLOUD_TOKEN_THRESHOLDS",
    "DISCOVERY_THRESHOLDS",
    "OIDC_TOKEN_THRESHOLDS",
    "CacheEntry",
    "CacheStore",
    "ExpiryPolicy",
    "ExpiryThresholds",
    "Freshness",
    "KeyLockRegistry",
    "KeyProvider",
    "ReadThroughCache",
    "create_key_provider",
]

from idaas_broker.cache.keys import KeyProvider, create_key_provider
from idaas_broker.cache.locks import KeyLockRegistry
from idaas_broker.cache.policy import (
    CLOUD_TOKEN_THRESHOLDS,
    DISCOVERY_THRESHOLDS,
    OIDC_TOKEN_THRESHOLDS,
    ExpiryPolicy,
    ExpiryThresholds,
    Freshness,
    ReadThroughCache,
)
from idaas_broker.cache.store import CacheEntry, CacheStore
