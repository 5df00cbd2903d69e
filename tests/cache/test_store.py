"""Tests for the encrypted cache store."""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

from idaas_broker.cache.keys import KeyProvider, StaticKeyProvider
from idaas_broker.cache.store import CacheStore
from idaas_broker.exceptions import StorageError


class TestPutGet:
    """Tests for writing and reading records."""

    def test_get_missing_returns_none(self, store: CacheStore) -> None:
        """Given no record, get returns None instead of raising."""
        assert store.get("cloud_token", "absent") is None

    def test_put_then_get_returns_content_and_capture_time(self, store: CacheStore) -> None:
        """Given a stored record, get returns the same content and captured_at."""
        # Arrange
        store.put("oidc_token", "default_abc", '{"access_token": "at"}', captured_at=1700000000.5)

        # Act
        entry = store.get("oidc_token", "default_abc")

        # Assert
        assert entry is not None
        assert entry.content == '{"access_token": "at"}'
        assert entry.captured_at == 1700000000.5
        assert entry.category == "oidc_token"
        assert entry.key == "default_abc"

    def test_put_defaults_captured_at_to_now(self, store: CacheStore) -> None:
        """Given no captured_at, put stamps the current time."""
        entry = store.put("oidc", "k", "{}")

        assert time.time() - entry.captured_at < 5

    def test_put_overwrites(self, store: CacheStore) -> None:
        """Given two puts for one key, get returns the latest content."""
        store.put("oidc", "k", '"old"')
        store.put("oidc", "k", '"new"')

        entry = store.get("oidc", "k")

        assert entry is not None
        assert entry.content == '"new"'

    def test_record_is_encrypted_at_rest(self, store: CacheStore) -> None:
        """Given a stored secret, the file on disk does not contain it."""
        store.put("cloud_token", "k", '{"accessKeySecret": "very-secret"}')

        raw = store.record_path("cloud_token", "k").read_bytes()

        assert b"very-secret" not in raw

    def test_record_file_is_owner_only(self, store: CacheStore) -> None:
        """Given a written record, its mode is 0600."""
        store.put("cloud_token", "k", "{}")

        mode = store.record_path("cloud_token", "k").stat().st_mode & 0o777

        assert mode == 0o600

    def test_no_temporary_files_left_behind(self, store: CacheStore) -> None:
        """Given several writes, only the record file remains in the category dir."""
        for i in range(3):
            store.put("oidc", "k", f'"{i}"')

        files = list((store.cache_dir / "oidc").iterdir())

        assert [f.name for f in files] == ["k.enc"]


class TestRecordPath:
    """Tests for key to file name mapping."""

    def test_safe_key_used_verbatim(self, store: CacheStore) -> None:
        """Given a plain key, the file name is the key."""
        path = store.record_path("oidc_token", "default_0123abcd")

        assert path.name == "default_0123abcd.enc"
        assert path.parent.name == "oidc_token"

    def test_unsafe_key_is_hashed(self, store: CacheStore) -> None:
        """Given a key with path separators, the file name is its sha256."""
        path = store.record_path("oidc", "../../etc/passwd")

        assert path.parent == store.cache_dir / "oidc"
        assert len(path.stem) == 64

    def test_invalid_category_raises(self, store: CacheStore) -> None:
        """Given a category with a path separator, raises StorageError."""
        with pytest.raises(StorageError):
            store.record_path("../oidc", "k")


class TestFailures:
    """Tests for decryption and corruption handling."""

    def test_wrong_key_is_recoverable(self, tmp_path: Path) -> None:
        """Given a record written with another key, get raises a recoverable StorageError."""
        # Arrange
        CacheStore(tmp_path, StaticKeyProvider(Fernet.generate_key())).put("oidc", "k", "{}")
        rotated = CacheStore(tmp_path, StaticKeyProvider(Fernet.generate_key()))

        # Act / Assert
        with pytest.raises(StorageError) as exc_info:
            rotated.get("oidc", "k")
        assert exc_info.value.recoverable is True

    def test_malformed_payload_is_fatal(self, store: CacheStore, key_provider: StaticKeyProvider) -> None:
        """Given a decryptable record with an invalid payload, raises a non-recoverable StorageError."""
        # Arrange
        path = store.record_path("oidc", "k")
        path.parent.mkdir(parents=True)
        path.write_bytes(Fernet(key_provider.get_key()).encrypt(b'{"content": 1}'))

        # Act / Assert
        with pytest.raises(StorageError) as exc_info:
            store.get("oidc", "k")
        assert exc_info.value.recoverable is False

    def test_malformed_key_raises(self, tmp_path: Path) -> None:
        """Given a key provider returning garbage, put raises StorageError."""
        store = CacheStore(tmp_path, StaticKeyProvider(b"not-a-fernet-key"))

        with pytest.raises(StorageError):
            store.put("oidc", "k", "{}")


class TestDelete:
    """Tests for delete."""

    def test_delete_removes_record(self, store: CacheStore) -> None:
        """Given a stored record, delete makes get return None."""
        store.put("token_response", "k", "{}")

        store.delete("token_response", "k")

        assert store.get("token_response", "k") is None

    def test_delete_missing_is_noop(self, store: CacheStore) -> None:
        """Given no record, delete does not raise."""
        store.delete("token_response", "absent")


class _CountingKeyProvider(KeyProvider):
    def __init__(self) -> None:
        self.calls = 0

    def get_key(self) -> bytes:
        self.calls += 1
        time.sleep(0.05)
        return Fernet.generate_key()


class TestKeyLoading:
    """Tests for lazy encryption key loading."""

    def test_concurrent_first_use_loads_key_once(self, tmp_path: Path) -> None:
        """Given two threads writing to a fresh store, the key provider is asked once."""
        # Arrange
        key_provider = _CountingKeyProvider()
        store = CacheStore(tmp_path / "cache", key_provider)

        # Act
        threads = [
            threading.Thread(target=store.put, args=("oidc_token", f"k{i}", f"content-{i}")) for i in range(2)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Assert
        assert key_provider.calls == 1
        assert store.get("oidc_token", "k0").content == "content-0"
        assert store.get("oidc_token", "k1").content == "content-1"
