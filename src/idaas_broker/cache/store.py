"""Encrypted, file-backed credential cache.

Records are namespaced by category and keyed by a composite string
(usually "{profile}_{config digest prefix}"):

    <cache_dir>/
    ├── cloud_token/
    │   └── default_3f2a...enc
    ├── oidc/
    ├── oidc_token/
    └── token_response/

Each record is a Fernet token over {"content": ..., "captured_at": ...}.
captured_at is the wall-clock time the content was fetched, stored next to
the content so expiry policies never have to re-derive it.

There is no in-memory layer: every get() reads storage. Writes are atomic
(write-temp-then-rename) so a crash never leaves a partial record.
"""

from __future__ import annotations

__all__ = [
    "CacheEntry",
    "CacheStore",
]

import hashlib
import re
import threading
import time
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, ValidationError

from idaas_broker.cache.keys import KeyProvider
from idaas_broker.exceptions import StorageError
from idaas_broker.utils.file_helpers import atomic_write_bytes

# Keys matching this pattern are used verbatim as file names
_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")

RECORD_SUFFIX = ".enc"


class CacheEntry(BaseModel):
    """A cached record.

    Attributes:
        category: Namespace (e.g. "cloud_token").
        key: Record key within the category.
        content: Opaque JSON-encoded content.
        captured_at: Unix time (seconds) when the content was fetched.
    """

    category: str
    key: str
    content: str
    captured_at: float


class _Record(BaseModel):
    content: str
    captured_at: float


class CacheStore:
    """Encrypted key/value store keyed by (category, key).

    The only component that touches persistent cache state.

    Usage:
        store = CacheStore(Path("~/.cache/idaas-broker"), key_provider)
        store.put("cloud_token", "default_3f2a", content)
        entry = store.get("cloud_token", "default_3f2a")
    """

    def __init__(self, cache_dir: Path, key_provider: KeyProvider) -> None:
        """Initialize the store.

        Args:
            cache_dir: Root directory for all categories.
            key_provider: Supplies the Fernet key (external secret provider).
        """
        self._cache_dir = cache_dir
        self._key_provider = key_provider
        self._fernet: Fernet | None = None
        self._fernet_lock = threading.Lock()

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def record_path(self, category: str, key: str) -> Path:
        """Return the file path for (category, key)."""
        if not _SAFE_NAME.match(category):
            raise StorageError(f"Invalid cache category: {category!r}")
        name = key if _SAFE_NAME.match(key) else hashlib.sha256(key.encode()).hexdigest()
        return self._cache_dir / category / f"{name}{RECORD_SUFFIX}"

    def _get_fernet(self) -> Fernet:
        if self._fernet is not None:
            return self._fernet
        with self._fernet_lock:
            if self._fernet is None:
                try:
                    self._fernet = Fernet(self._key_provider.get_key())
                except ValueError as e:
                    raise StorageError(f"Cache encryption key is malformed: {e}") from e
            return self._fernet

    def get(self, category: str, key: str) -> CacheEntry | None:
        """Read and decrypt a record.

        Returns:
            The entry, or None when no record exists.

        Raises:
            StorageError: On I/O failure, decryption failure (recoverable=True)
                or a malformed decrypted payload.
        """
        path = self.record_path(category, key)
        try:
            encrypted = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read cache record {category}/{key}: {e}") from e

        try:
            decrypted = self._get_fernet().decrypt(encrypted)
        except InvalidToken as e:
            raise StorageError(
                f"Failed to decrypt cache record {category}/{key} (key changed or record corrupted)",
                recoverable=True,
            ) from e

        try:
            record = _Record.model_validate_json(decrypted)
        except ValidationError as e:
            raise StorageError(f"Cache record {category}/{key} is corrupted: {e}") from e

        return CacheEntry(
            category=category,
            key=key,
            content=record.content,
            captured_at=record.captured_at,
        )

    def put(self, category: str, key: str, content: str, captured_at: float | None = None) -> CacheEntry:
        """Encrypt and atomically write a record.

        Args:
            category: Namespace.
            key: Record key.
            content: JSON-encoded content.
            captured_at: Fetch time; defaults to now.

        Returns:
            The entry as written.

        Raises:
            StorageError: If encryption or the write fails.
        """
        entry = CacheEntry(
            category=category,
            key=key,
            content=content,
            captured_at=time.time() if captured_at is None else captured_at,
        )
        record = _Record(content=entry.content, captured_at=entry.captured_at)
        path = self.record_path(category, key)
        try:
            encrypted = self._get_fernet().encrypt(record.model_dump_json().encode())
            atomic_write_bytes(path, encrypted)
        except OSError as e:
            raise StorageError(f"Failed to write cache record {category}/{key}: {e}") from e
        return entry

    def delete(self, category: str, key: str) -> None:
        """Delete a record. Missing records are ignored.

        Raises:
            StorageError: If the file exists but cannot be removed.
        """
        path = self.record_path(category, key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete cache record {category}/{key}: {e}") from e
