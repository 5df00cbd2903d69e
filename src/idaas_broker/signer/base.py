"""Signer capability interface.

A JwtSigner wraps one key backend (software key, PIV card, PKCS#11 token,
private-CA key) behind three operations: public_key(), sign_digest() and
sign(). ECDSA backends return ASN.1 DER signatures; conversion to the JOSE
r || s form happens once, in sign_jwt().
"""

from __future__ import annotations

__all__ = [
    "JwtSigner",
    "SignAlgorithm",
    "check_key_algorithm",
    "infer_algorithm",
]

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

from idaas_broker.exceptions import SignerError


class SignAlgorithm(Enum):
    """JWT signing algorithms supported by the broker."""

    RS256 = "RS256"
    ES256 = "ES256"
    ES384 = "ES384"
    ES512 = "ES512"

    @property
    def is_ecdsa(self) -> bool:
        return self is not SignAlgorithm.RS256

    @property
    def hash_algorithm(self) -> hashes.HashAlgorithm:
        match self:
            case SignAlgorithm.RS256 | SignAlgorithm.ES256:
                return hashes.SHA256()
            case SignAlgorithm.ES384:
                return hashes.SHA384()
            case SignAlgorithm.ES512:
                return hashes.SHA512()

    @property
    def coordinate_width(self) -> int:
        """Byte width of r and s in a JOSE ECDSA signature (0 for RSA)."""
        match self:
            case SignAlgorithm.ES256:
                return 32
            case SignAlgorithm.ES384:
                return 48
            case SignAlgorithm.ES512:
                return 66
            case SignAlgorithm.RS256:
                return 0

    @property
    def curve_name(self) -> str | None:
        match self:
            case SignAlgorithm.ES256:
                return ec.SECP256R1.name
            case SignAlgorithm.ES384:
                return ec.SECP384R1.name
            case SignAlgorithm.ES512:
                return ec.SECP521R1.name
            case SignAlgorithm.RS256:
                return None


_CURVE_ALGORITHMS = {
    ec.SECP256R1.name: SignAlgorithm.ES256,
    ec.SECP384R1.name: SignAlgorithm.ES384,
    ec.SECP521R1.name: SignAlgorithm.ES512,
}


def infer_algorithm(public_key: PublicKeyTypes) -> SignAlgorithm:
    """Pick the JWT algorithm for a public key.

    Raises:
        SignerError: If the key type or curve is unsupported.
    """
    if isinstance(public_key, rsa.RSAPublicKey):
        return SignAlgorithm.RS256
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        algorithm = _CURVE_ALGORITHMS.get(public_key.curve.name)
        if algorithm is None:
            raise SignerError(f"Unsupported elliptic curve: {public_key.curve.name}")
        return algorithm
    raise SignerError(f"Unsupported key type: {type(public_key).__name__}")


def check_key_algorithm(public_key: PublicKeyTypes, algorithm: SignAlgorithm) -> None:
    """Raise SignerError if `algorithm` cannot be used with `public_key`."""
    if infer_algorithm(public_key) is not algorithm:
        raise SignerError(f"Key of type {type(public_key).__name__} cannot sign {algorithm.value}")


class JwtSigner(ABC):
    """One signing key, whatever backend holds it.

    Attributes:
        algorithm: Algorithm used by sign_jwt().
        kid: Optional key id for the JWT header.
    """

    def __init__(self, algorithm: SignAlgorithm | None = None, kid: str | None = None) -> None:
        self._algorithm = algorithm
        self.kid = kid

    @property
    def algorithm(self) -> SignAlgorithm:
        if self._algorithm is None:
            self._algorithm = infer_algorithm(self.public_key())
        return self._algorithm

    @abstractmethod
    def public_key(self) -> PublicKeyTypes:
        """Return the public half of the signing key.

        Raises:
            SignerError: If the backend is unavailable.
        """

    @abstractmethod
    def sign_digest(self, digest: bytes, algorithm: SignAlgorithm) -> bytes:
        """Sign a precomputed digest.

        Returns:
            PKCS#1 v1.5 signature for RS256, DER SEQUENCE{r, s} for ES*.

        Raises:
            SignerError: If the backend refuses or fails.
        """

    def sign(self, message: bytes, algorithm: SignAlgorithm) -> bytes:
        """Hash `message` with the algorithm's hash and sign it.

        Backends that can hash on the device override this.
        """
        h = hashes.Hash(algorithm.hash_algorithm)
        h.update(message)
        return self.sign_digest(h.finalize(), algorithm)

    def extra_headers(self) -> dict[str, Any]:
        """Additional JWT header fields (e.g. x5c)."""
        return {}
