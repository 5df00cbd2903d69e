"""Shared fixtures for idaas-broker tests."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from idaas_broker.cache.keys import StaticKeyProvider
from idaas_broker.cache.locks import KeyLockRegistry
from idaas_broker.cache.policy import ReadThroughCache
from idaas_broker.cache.store import CacheStore
from idaas_broker.constants import CATEGORY_OIDC

ISSUER = "https://idaas.example.com/api/v2/app_abc/oidc"
TOKEN_ENDPOINT = f"{ISSUER}/token"
DEVICE_ENDPOINT = f"{ISSUER}/device/code"

DISCOVERY_DOCUMENT: dict[str, Any] = {
    "issuer": ISSUER,
    "token_endpoint": TOKEN_ENDPOINT,
    "device_authorization_endpoint": DEVICE_ENDPOINT,
    "jwks_uri": f"{ISSUER}/jwks",
}


@pytest.fixture
def key_provider() -> StaticKeyProvider:
    """Cache key provider with a fresh random Fernet key."""
    return StaticKeyProvider(Fernet.generate_key())


@pytest.fixture
def store(tmp_path: Path, key_provider: StaticKeyProvider) -> CacheStore:
    """Encrypted cache store in a temporary directory."""
    return CacheStore(tmp_path / "cache", key_provider)


@pytest.fixture
def cache(store: CacheStore) -> ReadThroughCache:
    """Read-through cache over the temporary store."""
    return ReadThroughCache(store, KeyLockRegistry(store))


@pytest.fixture
def http_client() -> MagicMock:
    """Mock httpx client; tests set get/post return values or side effects."""
    return MagicMock(spec=httpx.Client)


@pytest.fixture
def discovered(cache: ReadThroughCache) -> ReadThroughCache:
    """Cache pre-seeded with the issuer's discovery document."""
    key = f"issuer_{hashlib.sha256(ISSUER.encode()).hexdigest()[:32]}"
    cache.store.put(CATEGORY_OIDC, key, json.dumps(DISCOVERY_DOCUMENT))
    return cache


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def discovery_document() -> dict[str, Any]:
    """Issuer metadata matching the `discovered` fixture."""
    return dict(DISCOVERY_DOCUMENT)
