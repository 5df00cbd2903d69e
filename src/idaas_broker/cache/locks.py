"""Per-(category, key) mutual exclusion.

Two layers:
- a process-local threading.Lock per key, so concurrent requests in the
  serve process queue up instead of racing
- an exclusive fcntl.flock on <cache_dir>/<category>/<key>.lock, so
  separate CLI processes sharing a cache do the same

Lock order is outer (cloud_token) before inner (oidc_token, token_response, oidc).
"""

from __future__ import annotations

__all__ = ["KeyLockRegistry"]

import fcntl
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from idaas_broker.cache.store import CacheStore
from idaas_broker.exceptions import StorageError
from idaas_broker.utils.file_helpers import set_secure_permissions


@contextmanager
def _file_lock(lock_path: Path) -> Iterator[None]:
    """Hold an exclusive flock on `lock_path` (created if missing) for the block.

    Raises:
        StorageError: If the lock file cannot be created or locked.
    """
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        set_secure_permissions(lock_path.parent, is_directory=True)
        lock_file = open(lock_path, "w")
    except OSError as e:
        raise StorageError(f"Failed to open lock file {lock_path}: {e}") from e

    try:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        except OSError as e:
            raise StorageError(f"Failed to lock {lock_path}: {e}") from e
        yield
    finally:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        except OSError:
            pass
        lock_file.close()


class KeyLockRegistry:
    """Hands out one lock per (category, key)."""

    def __init__(self, store: CacheStore) -> None:
        self._store = store
        self._guard = threading.Lock()
        # Never pruned: one entry per (category, config digest) seen by this process
        self._locks: dict[tuple[str, str], threading.Lock] = {}

    def _thread_lock(self, category: str, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault((category, key), threading.Lock())

    @contextmanager
    def hold(self, category: str, key: str) -> Iterator[None]:
        """Hold the lock for (category, key) for the duration of the block.

        Not reentrant: a holder must not request the same key again.

        Raises:
            StorageError: If the lock file cannot be opened or locked.
        """
        lock_path = self._store.record_path(category, key).with_suffix(".lock")
        with self._thread_lock(category, key), _file_lock(lock_path):
            yield
