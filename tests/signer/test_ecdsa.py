"""Tests for DER to JOSE ECDSA signature normalization."""

from __future__ import annotations

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature, encode_dss_signature

from idaas_broker.exceptions import SignerError
from idaas_broker.signer.ecdsa import (
    align_coordinate,
    der_to_raw_signature,
    parse_der_signature,
    raw_to_der_signature,
)

CURVES = [
    (ec.SECP256R1(), hashes.SHA256(), 32),
    (ec.SECP384R1(), hashes.SHA384(), 48),
    (ec.SECP521R1(), hashes.SHA512(), 66),
]


class TestAlignCoordinate:
    """Tests for fixed-width coordinate rendering."""

    def test_short_value_left_padded(self) -> None:
        """Given fewer bytes than the width, pads with leading zeros."""
        assert align_coordinate(b"\x01\x02", 4) == b"\x00\x00\x01\x02"

    def test_exact_value_unchanged(self) -> None:
        """Given exactly width bytes, returns them unchanged."""
        assert align_coordinate(b"\xff" * 32, 32) == b"\xff" * 32

    def test_sign_byte_stripped(self) -> None:
        """Given a leading 0x00 sign byte over the width, strips it."""
        assert align_coordinate(b"\x00" + b"\x80" * 32, 32) == b"\x80" * 32

    def test_nonzero_excess_rejected(self) -> None:
        """Given a value that does not fit, raises SignerError instead of truncating."""
        with pytest.raises(SignerError):
            align_coordinate(b"\x01" + b"\x00" * 32, 32)


class TestDerToRaw:
    """Tests for der_to_raw_signature."""

    @pytest.mark.parametrize(("curve", "hash_algorithm", "width"), CURVES)
    def test_real_signatures_normalize_to_twice_width(
        self, curve: ec.EllipticCurve, hash_algorithm: hashes.HashAlgorithm, width: int
    ) -> None:
        """Given real DER signatures, output is 2W bytes and each half is r or s padded to W."""
        key = ec.generate_private_key(curve)
        for i in range(8):
            # Arrange
            der = key.sign(f"message {i}".encode(), ec.ECDSA(hash_algorithm))
            r, s = decode_dss_signature(der)

            # Act
            raw = der_to_raw_signature(der, width)

            # Assert
            assert len(raw) == 2 * width
            assert raw[:width] == r.to_bytes(width, "big")
            assert raw[width:] == s.to_bytes(width, "big")

    @pytest.mark.parametrize("width", [32, 48, 66])
    def test_high_bit_coordinates(self, width: int) -> None:
        """Given r and s with the high bit set (DER adds a sign byte), strips it."""
        # Arrange
        r = int.from_bytes(b"\xff" * width, "big")
        s = int.from_bytes(b"\x80" + b"\x01" * (width - 1), "big")
        der = encode_dss_signature(r, s)

        # Act
        raw = der_to_raw_signature(der, width)

        # Assert
        assert raw == r.to_bytes(width, "big") + s.to_bytes(width, "big")

    @pytest.mark.parametrize("width", [32, 48, 66])
    def test_small_coordinates_padded(self, width: int) -> None:
        """Given r and s much shorter than the width, pads both halves."""
        raw = der_to_raw_signature(encode_dss_signature(1, 2), width)

        assert raw == (1).to_bytes(width, "big") + (2).to_bytes(width, "big")

    def test_oversized_coordinate_rejected(self) -> None:
        """Given r wider than the curve, raises SignerError."""
        der = encode_dss_signature(1 << (8 * 33), 1)

        with pytest.raises(SignerError):
            der_to_raw_signature(der, 32)

    def test_malformed_der_rejected(self) -> None:
        """Given bytes that are not a DER SEQUENCE, raises SignerError."""
        with pytest.raises(SignerError):
            parse_der_signature(b"\x30\x03\x02\x01")


class TestRawToDer:
    """Tests for raw_to_der_signature."""

    def test_round_trip(self) -> None:
        """Given a raw r || s signature, DER encodes the same integers."""
        raw = (12345).to_bytes(32, "big") + (67890).to_bytes(32, "big")

        assert parse_der_signature(raw_to_der_signature(raw)) == (12345, 67890)

    def test_odd_length_rejected(self) -> None:
        """Given an odd-length input, raises SignerError."""
        with pytest.raises(SignerError):
            raw_to_der_signature(b"\x01\x02\x03")
