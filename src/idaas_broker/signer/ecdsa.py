"""ECDSA signature format conversion.

Smartcards, HSMs and cryptography all produce DER:

    SEQUENCE { r INTEGER, s INTEGER }

JOSE (RFC 7518 section 3.4) wants r and s as fixed-width unsigned
big-endian integers, concatenated. DER integers are signed and minimal,
so a coordinate may be shorter than the curve width or carry one leading
0x00 sign byte. Truncating instead of aligning corrupts the signature.
"""

from __future__ import annotations

__all__ = [
    "ECDSASignatureComponents",
    "align_coordinate",
    "der_to_raw_signature",
    "parse_der_signature",
    "raw_to_der_signature",
]

from typing import NamedTuple

from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from idaas_broker.exceptions import SignerError


class ECDSASignatureComponents(NamedTuple):
    r: int
    s: int


def parse_der_signature(der: bytes) -> ECDSASignatureComponents:
    """Decode a DER ECDSA signature.

    Raises:
        SignerError: If `der` is not a valid SEQUENCE of two INTEGERs.
    """
    try:
        r, s = decode_dss_signature(der)
    except ValueError as e:
        raise SignerError(f"Malformed DER ECDSA signature: {e}") from e
    return ECDSASignatureComponents(r, s)


def _der_integer_content(value: int) -> bytes:
    # Minimal two's-complement encoding, as it appears inside a DER INTEGER
    return value.to_bytes(value.bit_length() // 8 + 1, "big")


def align_coordinate(value: bytes, width: int) -> bytes:
    """Render a big-endian integer as exactly `width` bytes.

    Shorter input is left-padded with zeros. Longer input may only carry
    leading zero bytes, which are stripped.

    Raises:
        SignerError: If the value does not fit in `width` bytes.
    """
    if len(value) <= width:
        return value.rjust(width, b"\x00")
    excess = len(value) - width
    if any(value[:excess]):
        raise SignerError(f"ECDSA coordinate of {len(value)} bytes does not fit in {width} bytes")
    return value[excess:]


def der_to_raw_signature(der: bytes, width: int) -> bytes:
    """Convert a DER ECDSA signature to JOSE r || s form.

    Args:
        der: DER SEQUENCE{r, s}.
        width: Coordinate width in bytes (32, 48 or 66).

    Returns:
        Exactly 2 * width bytes.

    Raises:
        SignerError: If the signature is malformed or a coordinate is too wide.
    """
    r, s = parse_der_signature(der)
    if r < 0 or s < 0:
        raise SignerError("ECDSA signature contains a negative integer")
    return align_coordinate(_der_integer_content(r), width) + align_coordinate(_der_integer_content(s), width)


def raw_to_der_signature(raw: bytes) -> bytes:
    """Convert a JOSE/PKCS#11 r || s signature to DER.

    Raises:
        SignerError: If `raw` has odd length or is empty.
    """
    if not raw or len(raw) % 2:
        raise SignerError(f"Raw ECDSA signature has invalid length {len(raw)}")
    half = len(raw) // 2
    return encode_dss_signature(int.from_bytes(raw[:half], "big"), int.from_bytes(raw[half:], "big"))
