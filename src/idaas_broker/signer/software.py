"""Software private key signer."""

from __future__ import annotations

__all__ = ["SoftwareKeySigner"]

from pathlib import Path

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes, PublicKeyTypes
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from idaas_broker.exceptions import SignerError
from idaas_broker.signer.base import JwtSigner, SignAlgorithm, check_key_algorithm


class SoftwareKeySigner(JwtSigner):
    """Signs with an RSA or EC private key held in memory."""

    def __init__(
        self,
        private_key: PrivateKeyTypes,
        algorithm: SignAlgorithm | None = None,
        kid: str | None = None,
    ) -> None:
        if not isinstance(private_key, rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey):
            raise SignerError(f"Unsupported private key type: {type(private_key).__name__}")
        super().__init__(algorithm, kid)
        self._private_key = private_key
        if algorithm is not None:
            check_key_algorithm(private_key.public_key(), algorithm)

    @classmethod
    def from_file(
        cls,
        key_path: Path,
        password: str | None = None,
        algorithm: SignAlgorithm | None = None,
        kid: str | None = None,
    ) -> SoftwareKeySigner:
        """Load a PEM private key (PKCS#1, SEC1 or PKCS#8, optionally encrypted).

        Raises:
            SignerError: If the file cannot be read or decrypted.
        """
        try:
            data = key_path.expanduser().read_bytes()
        except OSError as e:
            raise SignerError(f"Cannot read private key {key_path}: {e}") from e
        try:
            private_key = load_pem_private_key(data, password.encode() if password else None)
        except TypeError as e:
            # Raised for a missing password on an encrypted key, or a password on a plain one
            raise SignerError(f"Private key {key_path}: {e}") from e
        except ValueError as e:
            raise SignerError(f"Cannot load private key {key_path} (wrong password or bad format): {e}") from e
        return cls(private_key, algorithm, kid)

    def public_key(self) -> PublicKeyTypes:
        return self._private_key.public_key()

    def sign_digest(self, digest: bytes, algorithm: SignAlgorithm) -> bytes:
        return self._sign(digest, Prehashed(algorithm.hash_algorithm), algorithm)

    def sign(self, message: bytes, algorithm: SignAlgorithm) -> bytes:
        return self._sign(message, algorithm.hash_algorithm, algorithm)

    def _sign(
        self, data: bytes, hash_algorithm: hashes.HashAlgorithm | Prehashed, algorithm: SignAlgorithm
    ) -> bytes:
        key = self._private_key
        if isinstance(key, rsa.RSAPrivateKey) and not algorithm.is_ecdsa:
            return key.sign(data, padding.PKCS1v15(), hash_algorithm)
        if isinstance(key, ec.EllipticCurvePrivateKey) and algorithm.curve_name == key.curve.name:
            return key.sign(data, ec.ECDSA(hash_algorithm))
        raise SignerError(f"Key of type {type(key).__name__} cannot sign {algorithm.value}")
