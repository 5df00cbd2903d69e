"""Signer for a key certified by a private CA.

Delegates signing to the backend holding the key and adds the certificate
chain to the JWT header as "x5c" (RFC 7515 section 4.1.6).
"""

from __future__ import annotations

__all__ = ["PrivateCaSigner", "load_certificate_chain"]

import base64
from pathlib import Path
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from idaas_broker.exceptions import SignerError
from idaas_broker.signer.base import JwtSigner, SignAlgorithm


def load_certificate_chain(path: Path) -> list[x509.Certificate]:
    """Load a PEM chain, leaf first.

    Raises:
        SignerError: If the file is unreadable or holds no certificate.
    """
    try:
        data = path.expanduser().read_bytes()
    except OSError as e:
        raise SignerError(f"Cannot read certificate {path}: {e}") from e
    try:
        chain = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise SignerError(f"Invalid certificate file {path}: {e}") from e
    return chain


def _spki(public_key: PublicKeyTypes) -> bytes:
    return public_key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)


class PrivateCaSigner(JwtSigner):
    """Wraps another signer and advertises its certificate chain."""

    def __init__(
        self,
        inner: JwtSigner,
        chain: list[x509.Certificate],
        algorithm: SignAlgorithm | None = None,
        kid: str | None = None,
    ) -> None:
        if not chain:
            raise SignerError("Private CA signer requires at least one certificate")
        super().__init__(algorithm or inner._algorithm, kid or inner.kid)
        self._inner = inner
        self._chain = chain

    def public_key(self) -> PublicKeyTypes:
        public_key = self._inner.public_key()
        if _spki(public_key) != _spki(self._chain[0].public_key()):
            raise SignerError("Certificate public key does not match the signing key")
        return public_key

    def sign_digest(self, digest: bytes, algorithm: SignAlgorithm) -> bytes:
        return self._inner.sign_digest(digest, algorithm)

    def sign(self, message: bytes, algorithm: SignAlgorithm) -> bytes:
        return self._inner.sign(message, algorithm)

    def extra_headers(self) -> dict[str, Any]:
        return {"x5c": [base64.b64encode(cert.public_bytes(Encoding.DER)).decode("ascii") for cert in self._chain]}
