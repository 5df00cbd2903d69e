"""Per-invocation broker context.

Values that would otherwise be package globals (process start time,
default paths, the cache key source) are built once by BrokerContext.create()
and passed down explicitly.
"""

from __future__ import annotations

__all__ = ["BrokerContext"]

import time
from dataclasses import dataclass
from pathlib import Path

from idaas_broker.cache.keys import KeyProvider, create_key_provider
from idaas_broker.config import resolve_config_path
from idaas_broker.constants import DEFAULT_CACHE_DIR, HTTP_TIMEOUT_SECONDS


@dataclass(frozen=True)
class BrokerContext:
    """Immutable settings shared by every component of one invocation.

    Attributes:
        config_path: Resolved configuration file path.
        cache_dir: Root of the encrypted credential cache.
        startup_ms: Process start time in Unix milliseconds.
        key_provider: Source of the cache encryption key.
        http_timeout: Timeout in seconds for every upstream HTTP call.
    """

    config_path: Path
    cache_dir: Path
    startup_ms: int
    key_provider: KeyProvider
    http_timeout: float = HTTP_TIMEOUT_SECONDS

    @classmethod
    def create(
        cls,
        config_path: str | Path | None = None,
        cache_dir: str | Path | None = None,
        key_provider: KeyProvider | None = None,
        http_timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> BrokerContext:
        """Build a context, filling unset values with OS defaults."""
        return cls(
            config_path=resolve_config_path(config_path),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else Path(DEFAULT_CACHE_DIR),
            startup_ms=int(time.time() * 1000),
            key_provider=key_provider or create_key_provider(),
            http_timeout=http_timeout,
        )
