"""Tests for cache encryption key providers and cache locks."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest
from cryptography.fernet import Fernet
from keyring.errors import KeyringError

from idaas_broker.cache.keys import (
    KEYRING_SERVICE,
    KEYRING_USERNAME,
    KeyringKeyProvider,
    MachineKeyProvider,
    StaticKeyProvider,
    create_key_provider,
)
from idaas_broker.cache.locks import KeyLockRegistry
from idaas_broker.cache.store import CacheStore
from idaas_broker.exceptions import StorageError


class TestStaticKeyProvider:
    def test_returns_given_key(self) -> None:
        key = Fernet.generate_key()

        assert StaticKeyProvider(key).get_key() == key


class TestKeyringKeyProvider:
    """Tests for the OS keychain provider."""

    def test_existing_key_reused(self) -> None:
        """Given a stored key, returns it without writing."""
        # Arrange
        stored = Fernet.generate_key().decode()

        # Act
        with (
            patch("keyring.get_password", return_value=stored) as get_password,
            patch("keyring.set_password") as set_password,
        ):
            key = KeyringKeyProvider().get_key()

        # Assert
        assert key == stored.encode()
        get_password.assert_called_once_with(KEYRING_SERVICE, KEYRING_USERNAME)
        set_password.assert_not_called()

    def test_missing_key_generated_and_stored(self) -> None:
        """Given an empty keychain, generates a Fernet key and stores it."""
        with (
            patch("keyring.get_password", return_value=None),
            patch("keyring.set_password") as set_password,
        ):
            key = KeyringKeyProvider().get_key()

        Fernet(key)
        set_password.assert_called_once_with(KEYRING_SERVICE, KEYRING_USERNAME, key.decode())

    def test_key_memoized(self) -> None:
        provider = KeyringKeyProvider()

        with patch("keyring.get_password", return_value=Fernet.generate_key().decode()) as get_password:
            provider.get_key()
            provider.get_key()

        assert get_password.call_count == 1

    def test_keyring_error_raises_storage_error(self) -> None:
        with patch("keyring.get_password", side_effect=KeyringError("locked")):
            with pytest.raises(StorageError, match="keychain"):
                KeyringKeyProvider().get_key()

    def test_concurrent_first_use_stores_one_key(self) -> None:
        """Given two threads on an empty keychain, only one key is generated and stored."""
        # Arrange
        keychain: dict[tuple[str, str], str] = {}

        def slow_get(service: str, username: str) -> str | None:
            time.sleep(0.05)
            return keychain.get((service, username))

        def store_password(service: str, username: str, password: str) -> None:
            keychain[(service, username)] = password

        provider = KeyringKeyProvider()
        keys: list[bytes] = []

        # Act
        with (
            patch("keyring.get_password", side_effect=slow_get),
            patch("keyring.set_password", side_effect=store_password) as set_password,
        ):
            threads = [threading.Thread(target=lambda: keys.append(provider.get_key())) for _ in range(2)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        # Assert
        assert len(keys) == 2
        assert len(set(keys)) == 1
        assert set_password.call_count == 1


class TestMachineKeyProvider:
    """Tests for the machine-derived fallback key."""

    def test_stable_and_valid(self) -> None:
        """Given the same machine, two providers derive the same usable key."""
        with patch("idaas_broker.cache.keys.machine_identifier", return_value="machine-1"):
            first = MachineKeyProvider().get_key()
            second = MachineKeyProvider().get_key()

        assert first == second
        Fernet(first)

    def test_differs_per_machine(self) -> None:
        with patch("idaas_broker.cache.keys.machine_identifier", return_value="machine-1"):
            first = MachineKeyProvider().get_key()
        with patch("idaas_broker.cache.keys.machine_identifier", return_value="machine-2"):
            second = MachineKeyProvider().get_key()

        assert first != second


class TestCreateKeyProvider:
    @pytest.mark.parametrize(("available", "expected"), [(True, KeyringKeyProvider), (False, MachineKeyProvider)])
    def test_selection(self, available: bool, expected: type) -> None:
        with patch("idaas_broker.cache.keys.is_keyring_available", return_value=available):
            assert isinstance(create_key_provider(), expected)


class TestKeyLockRegistry:
    """Tests for per-key locking."""

    def test_lock_file_created_next_to_record(self, store: CacheStore) -> None:
        locks = KeyLockRegistry(store)

        with locks.hold("oidc_token", "abc"):
            pass

        assert store.record_path("oidc_token", "abc").with_suffix(".lock").exists()

    def test_same_key_serialized(self, store: CacheStore) -> None:
        """Given two threads on one key, the second waits for the first to release."""
        # Arrange
        locks = KeyLockRegistry(store)
        events: list[str] = []
        entered = threading.Event()

        def holder() -> None:
            with locks.hold("cloud_token", "k"):
                entered.set()
                time.sleep(0.1)
                events.append("first-release")

        # Act
        thread = threading.Thread(target=holder)
        thread.start()
        entered.wait(timeout=5)
        with locks.hold("cloud_token", "k"):
            events.append("second-acquire")
        thread.join()

        # Assert
        assert events == ["first-release", "second-acquire"]

    def test_distinct_keys_independent(self, store: CacheStore) -> None:
        """Given an outer lock held, an inner lock on another key is still available."""
        locks = KeyLockRegistry(store)

        with locks.hold("cloud_token", "outer"), locks.hold("oidc_token", "inner"):
            acquired = True

        assert acquired

    def test_unwritable_directory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "cache"
        blocker.write_text("not a directory")
        store = CacheStore(blocker / "nested", StaticKeyProvider(Fernet.generate_key()))

        with pytest.raises(StorageError, match="lock file"):
            with KeyLockRegistry(store).hold("oidc_token", "k"):
                pass

    def test_thread_lock_reused_per_key(self, store: CacheStore) -> None:
        """Given repeated requests for one key, the same lock object is handed out."""
        locks = KeyLockRegistry(store)

        assert locks._thread_lock("cloud_token", "k") is locks._thread_lock("cloud_token", "k")
        assert locks._thread_lock("cloud_token", "k") is not locks._thread_lock("oidc_token", "k")
