"""Encryption key providers for the credential cache.

The cache never chooses its own key material. A KeyProvider supplies the
Fernet key:

1. KeyringKeyProvider (primary): random Fernet key kept in the OS keychain
   via the keyring library
   - macOS: Keychain
   - Windows: Credential Locker
   - Linux: Secret Service (GNOME Keyring, KDE Wallet)

2. MachineKeyProvider (fallback): key derived from machine-specific
   identifiers, used when keyring is unavailable

3. StaticKeyProvider: caller-supplied key (tests, containers with an
   injected secret)
"""

from __future__ import annotations

__all__ = [
    "KeyProvider",
    "KeyringKeyProvider",
    "MachineKeyProvider",
    "StaticKeyProvider",
    "create_key_provider",
    "is_keyring_available",
    "machine_identifier",
]

import base64
import hashlib
import platform
import socket
import subprocess
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from cryptography.fernet import Fernet

from idaas_broker.constants import APP_NAME
from idaas_broker.exceptions import StorageError
from idaas_broker.telemetry.system_logger import get_system_logger

KEYRING_SERVICE = APP_NAME

# Username key for keyring (single-operator design)
KEYRING_USERNAME = "cache-encryption-key"


class KeyProvider(ABC):
    """Source of the cache encryption key."""

    @abstractmethod
    def get_key(self) -> bytes:
        """Return a URL-safe base64 encoded 32-byte Fernet key.

        Raises:
            StorageError: If the key cannot be obtained.
        """


class StaticKeyProvider(KeyProvider):
    """Key supplied by the caller."""

    def __init__(self, key: bytes) -> None:
        self._key = key

    def get_key(self) -> bytes:
        return self._key


class KeyringKeyProvider(KeyProvider):
    """Random Fernet key stored in the OS keychain.

    Generated on first use. Deleting the keychain item rotates the key;
    existing cache records then fail to decrypt and are treated as misses.
    """

    def __init__(self, service: str = KEYRING_SERVICE, username: str = KEYRING_USERNAME) -> None:
        self._service = service
        self._username = username
        self._key: bytes | None = None
        self._lock = threading.Lock()

    def get_key(self) -> bytes:
        if self._key is not None:
            return self._key

        import keyring
        from keyring.errors import KeyringError

        # Read-or-create must not interleave, or two callers each store a key
        with self._lock:
            if self._key is not None:
                return self._key
            try:
                stored = keyring.get_password(self._service, self._username)
                if stored is None:
                    stored = Fernet.generate_key().decode()
                    keyring.set_password(self._service, self._username, stored)
            except KeyringError as e:
                raise StorageError(f"Failed to access keychain for cache key: {e}") from e

            self._key = stored.encode()
            return self._key


_MACHINE_ID_FILES = ("/etc/machine-id", "/var/lib/dbus/machine-id")


def _darwin_platform_uuid() -> str | None:
    try:
        output = subprocess.run(
            ["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        ).stdout
    except (subprocess.SubprocessError, OSError):
        return None
    for line in output.splitlines():
        name, sep, value = line.partition("=")
        if sep and "IOPlatformUUID" in name:
            return value.strip().strip('"')
    return None


def machine_identifier() -> str:
    """Stable identifier for this host.

    systemd/dbus machine id on Linux, the platform UUID on macOS, the
    hostname anywhere else.
    """
    if platform.system() == "Darwin":
        uuid = _darwin_platform_uuid()
        if uuid:
            return uuid
    for candidate in _MACHINE_ID_FILES:
        try:
            machine_id = Path(candidate).read_text().strip()
        except OSError:
            continue
        if machine_id:
            return machine_id
    return socket.gethostname()


class MachineKeyProvider(KeyProvider):
    """Fallback key derived with PBKDF2 from the machine identifier and hostname.

    Anyone with a shell on the same host can derive it, so it only keeps
    cache files from being portable between machines.
    """

    _ITERATIONS = 100_000

    def __init__(self) -> None:
        self._key: bytes | None = None

    def get_key(self) -> bytes:
        if self._key is None:
            material = f"{machine_identifier()}:{socket.gethostname()}:{APP_NAME}-cache"
            derived = hashlib.pbkdf2_hmac(
                "sha256", material.encode(), f"{APP_NAME}-cache-v1".encode(), self._ITERATIONS, dklen=32
            )
            self._key = base64.urlsafe_b64encode(derived)
        return self._key


def is_keyring_available(probe_suffix: str = "probe") -> bool:
    """Probe the OS keychain with a throwaway set, get and delete.

    Never raises: any failure (no backend, locked keychain, DBus errors)
    is logged at DEBUG and reported as unavailable.
    """
    logger = get_system_logger()
    try:
        import keyring
        from keyring.backends.fail import Keyring as NoBackend

        if isinstance(keyring.get_keyring(), NoBackend):
            logger.debug({"event": "keyring_probe_failed", "message": "No usable keyring backend"})
            return False

        service = f"{APP_NAME}-{probe_suffix}"
        keyring.set_password(service, KEYRING_USERNAME, "ok")
        try:
            return keyring.get_password(service, KEYRING_USERNAME) == "ok"
        finally:
            keyring.delete_password(service, KEYRING_USERNAME)
    except Exception as e:
        logger.debug(
            {
                "event": "keyring_probe_failed",
                "message": f"Keyring probe failed: {e}",
                "error_type": type(e).__name__,
            }
        )
        return False


def create_key_provider() -> KeyProvider:
    """Keychain-backed provider when the keychain works, machine-derived otherwise."""
    if is_keyring_available(probe_suffix="cache-key-probe"):
        return KeyringKeyProvider()
    return MachineKeyProvider()
