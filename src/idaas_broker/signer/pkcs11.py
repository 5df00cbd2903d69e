"""PKCS#11 token / HSM signer.

Requires the optional `python-pkcs11` package:
    pip install "idaas-broker[pkcs11]"

PKCS#11 returns ECDSA signatures as raw r || s. They are re-encoded as
DER so every backend hands sign_jwt() the same format.
"""

from __future__ import annotations

__all__ = ["Pkcs11Signer"]

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from cryptography.hazmat.primitives.serialization import load_der_public_key

from idaas_broker.exceptions import SignerError
from idaas_broker.signer.base import JwtSigner, SignAlgorithm, check_key_algorithm
from idaas_broker.signer.ecdsa import raw_to_der_signature

# DER DigestInfo prefix for SHA-256 (RFC 8017 section 9.2)
_SHA256_DIGEST_INFO = bytes.fromhex("3031300d060960864801650304020105000420")


def _import_pkcs11() -> Any:
    try:
        import pkcs11
        import pkcs11.exceptions
        import pkcs11.util.ec
        import pkcs11.util.rsa
    except ImportError as e:
        raise SignerError(
            "PKCS#11 signing requires python-pkcs11. Install with: pip install 'idaas-broker[pkcs11]'"
        ) from e
    return pkcs11


class Pkcs11Signer(JwtSigner):
    """Signs with a private key object on a PKCS#11 token."""

    def __init__(
        self,
        module_path: str,
        token_label: str,
        key_label: str,
        pin: str | None,
        algorithm: SignAlgorithm | None = None,
        kid: str | None = None,
    ) -> None:
        super().__init__(algorithm, kid)
        self._module_path = module_path
        self._token_label = token_label
        self._key_label = key_label
        self._pin = pin
        self._public_key: PublicKeyTypes | None = None

    @contextmanager
    def _session(self, *, login: bool) -> Iterator[Any]:
        pkcs11 = _import_pkcs11()
        if login and not self._pin:
            raise SignerError("PKCS#11 PIN is not configured (set 'pin' or IDAAS_BROKER_PKCS11_PIN)")
        try:
            lib = pkcs11.lib(self._module_path)
            token = lib.get_token(token_label=self._token_label)
            with token.open(user_pin=self._pin if login else None) as session:
                yield session
        except SignerError:
            raise
        except (pkcs11.exceptions.PKCS11Error, RuntimeError, OSError) as e:
            raise SignerError(f"PKCS#11 operation failed ({self._token_label}/{self._key_label}): {e}") from e

    def _read_public_key(self, session: Any) -> PublicKeyTypes:
        pkcs11 = _import_pkcs11()
        key = session.get_key(object_class=pkcs11.ObjectClass.PUBLIC_KEY, label=self._key_label)
        if key.key_type == pkcs11.KeyType.RSA:
            der = pkcs11.util.rsa.encode_rsa_public_key(key)
        elif key.key_type == pkcs11.KeyType.EC:
            der = pkcs11.util.ec.encode_ec_public_key(key)
        else:
            raise SignerError(f"Unsupported PKCS#11 key type: {key.key_type}")
        return load_der_public_key(der)

    def public_key(self) -> PublicKeyTypes:
        if self._public_key is None:
            with self._session(login=False) as session:
                self._public_key = self._read_public_key(session)
        return self._public_key

    def sign_digest(self, digest: bytes, algorithm: SignAlgorithm) -> bytes:
        pkcs11 = _import_pkcs11()
        if algorithm.is_ecdsa:
            return self._sign(digest, pkcs11.Mechanism.ECDSA, algorithm)
        return self._sign(_SHA256_DIGEST_INFO + digest, pkcs11.Mechanism.RSA_PKCS, algorithm)

    def sign(self, message: bytes, algorithm: SignAlgorithm) -> bytes:
        pkcs11 = _import_pkcs11()
        mechanism = {
            SignAlgorithm.RS256: pkcs11.Mechanism.SHA256_RSA_PKCS,
            SignAlgorithm.ES256: pkcs11.Mechanism.ECDSA_SHA256,
            SignAlgorithm.ES384: pkcs11.Mechanism.ECDSA_SHA384,
            SignAlgorithm.ES512: pkcs11.Mechanism.ECDSA_SHA512,
        }[algorithm]
        return self._sign(message, mechanism, algorithm)

    def _sign(self, data: bytes, mechanism: Any, algorithm: SignAlgorithm) -> bytes:
        pkcs11 = _import_pkcs11()
        with self._session(login=True) as session:
            public_key = self._read_public_key(session)
            check_key_algorithm(public_key, algorithm)
            self._public_key = public_key
            private_key = session.get_key(object_class=pkcs11.ObjectClass.PRIVATE_KEY, label=self._key_label)
            signature = private_key.sign(data, mechanism=mechanism)
        if algorithm.is_ecdsa:
            return raw_to_der_signature(signature)
        return signature
