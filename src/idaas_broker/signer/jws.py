"""Compact JWS assembly over a JwtSigner."""

from __future__ import annotations

__all__ = ["sign_jwt"]

import json
from typing import Any

from jwt.utils import base64url_encode

from idaas_broker.signer.base import JwtSigner
from idaas_broker.signer.ecdsa import der_to_raw_signature


def _encode_segment(value: dict[str, Any]) -> bytes:
    return base64url_encode(json.dumps(value, separators=(",", ":")).encode())


def sign_jwt(signer: JwtSigner, claims: dict[str, Any]) -> str:
    """Build and sign a compact JWT.

    Header is {alg, typ: JWT} plus kid and any backend headers (x5c).
    ECDSA signatures are normalized from DER to fixed-width r || s.

    Args:
        signer: Signing backend.
        claims: JWT claims.

    Returns:
        The compact serialization header.claims.signature.

    Raises:
        SignerError: If signing or signature normalization fails.
    """
    algorithm = signer.algorithm
    header: dict[str, Any] = {"alg": algorithm.value, "typ": "JWT"}
    if signer.kid:
        header["kid"] = signer.kid
    header.update(signer.extra_headers())

    signing_input = _encode_segment(header) + b"." + _encode_segment(claims)
    signature = signer.sign(signing_input, algorithm)
    if algorithm.is_ecdsa:
        signature = der_to_raw_signature(signature, algorithm.coordinate_width)

    return (signing_input + b"." + base64url_encode(signature)).decode("ascii")
