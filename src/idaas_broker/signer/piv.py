"""PIV smartcard signer (YubiKey).

Requires the optional `yubikey-manager` package:
    pip install "idaas-broker[piv]"

The card is opened for every operation and the PIN verified each time;
nothing is held between calls. A key with a touch policy blocks in sign()
until the user touches the device.
"""

from __future__ import annotations

__all__ = ["PivSigner"]

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from idaas_broker.exceptions import SignerError
from idaas_broker.signer.base import JwtSigner, SignAlgorithm, check_key_algorithm
from idaas_broker.telemetry.system_logger import get_system_logger

_logger = get_system_logger()


def _import_yubikit() -> tuple[Any, Any, Any, Any, Any]:
    try:
        from ykman.device import list_all_devices
        from yubikit.core.smartcard import SmartCardConnection
        from yubikit.piv import KEY_TYPE, SLOT, PivSession
    except ImportError as e:
        raise SignerError(
            "PIV signing requires yubikey-manager. Install with: pip install 'idaas-broker[piv]'"
        ) from e
    return list_all_devices, SmartCardConnection, PivSession, SLOT, KEY_TYPE


class PivSigner(JwtSigner):
    """Signs with a key in a PIV slot."""

    def __init__(
        self,
        slot: str,
        pin: str | None,
        serial: int | None = None,
        algorithm: SignAlgorithm | None = None,
        kid: str | None = None,
    ) -> None:
        super().__init__(algorithm, kid)
        self._slot_hex = slot
        self._pin = pin
        self._serial = serial
        self._public_key: PublicKeyTypes | None = None

    @contextmanager
    def _session(self) -> Iterator[Any]:
        list_all_devices, SmartCardConnection, PivSession, _, _ = _import_yubikit()

        devices = [
            (device, info)
            for device, info in list_all_devices()
            if self._serial is None or info.serial == self._serial
        ]
        if not devices:
            target = f" with serial {self._serial}" if self._serial is not None else ""
            raise SignerError(f"No YubiKey{target} found")
        if len(devices) > 1:
            raise SignerError("More than one YubiKey connected; set 'serial' in the signer config")

        device, _ = devices[0]
        try:
            with device.open_connection(SmartCardConnection) as connection:
                yield PivSession(connection)
        except SignerError:
            raise
        except Exception as e:
            # yubikit raises a mix of CommandError, ApduError and OSError subclasses
            raise SignerError(f"YubiKey PIV operation failed: {e}") from e

    def _slot(self) -> Any:
        _, _, _, SLOT, _ = _import_yubikit()
        try:
            return SLOT(int(self._slot_hex, 16))
        except ValueError as e:
            raise SignerError(f"Invalid PIV slot: {self._slot_hex}") from e

    def _read_public_key(self, session: Any) -> PublicKeyTypes:
        slot = self._slot()
        try:
            return session.get_slot_metadata(slot).public_key
        except Exception:
            # Slot metadata needs firmware 5.3+; fall back to the slot certificate
            return session.get_certificate(slot).public_key()

    def public_key(self) -> PublicKeyTypes:
        if self._public_key is None:
            with self._session() as session:
                self._public_key = self._read_public_key(session)
        return self._public_key

    def sign_digest(self, digest: bytes, algorithm: SignAlgorithm) -> bytes:
        return self._sign(digest, Prehashed(algorithm.hash_algorithm), algorithm)

    def sign(self, message: bytes, algorithm: SignAlgorithm) -> bytes:
        return self._sign(message, algorithm.hash_algorithm, algorithm)

    def _sign(self, data: bytes, hash_algorithm: Any, algorithm: SignAlgorithm) -> bytes:
        if not self._pin:
            raise SignerError("PIV PIN is not configured (set 'pin' or IDAAS_BROKER_YUBIKEY_PIN)")
        _, _, _, _, KEY_TYPE = _import_yubikit()

        with self._session() as session:
            public_key = self._read_public_key(session)
            check_key_algorithm(public_key, algorithm)
            self._public_key = public_key
            try:
                session.verify_pin(self._pin)
            except Exception as e:
                raise SignerError(f"PIV PIN rejected: {e}") from e

            _logger.info(
                {
                    "event": "piv_sign",
                    "message": f"Signing with PIV slot {self._slot_hex}; touch the key if it blinks",
                }
            )
            key_type = KEY_TYPE.from_public_key(public_key)
            pad = None if algorithm.is_ecdsa else padding.PKCS1v15()
            return session.sign(self._slot(), key_type, data, hash_algorithm, pad)
