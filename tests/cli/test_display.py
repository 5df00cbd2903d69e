"""Tests for show-token rendering."""

from __future__ import annotations

import jwt
import pytest

from idaas_broker.cli.display import render_credential
from idaas_broker.cli.styling import expiration_color, style_row
from idaas_broker.cloud.models import AlibabaStsToken, CloudAccountCredential
from idaas_broker.credentials import OidcToken
from idaas_broker.oidc.models import TokenResponse

NOW = 1_700_000_000.0


def _id_token(exp: float) -> str:
    return jwt.encode({"sub": "user", "exp": int(exp)}, "k" * 32, algorithm="HS256")


class TestStyling:
    """Tests for row and color helpers."""

    @pytest.mark.parametrize(
        ("seconds", "color"), [(60, "red"), (20 * 60, "yellow"), (29 * 60, "yellow"), (30 * 60, "green")]
    )
    def test_expiration_color(self, seconds: float, color: str) -> None:
        assert expiration_color(seconds) == color

    def test_plain_row(self) -> None:
        assert style_row("Access Key ID", "AK", 18, color=False) == "Access Key ID     : AK"


class TestStsReport:
    """Tests for STS token rows."""

    def test_expiry_countdown(self) -> None:
        """Given an expiry 45 minutes out, shows the remaining minutes."""
        # Arrange
        token = AlibabaStsToken("AK", "SK", "ST", "2023-11-14T22:58:20Z")

        # Act
        lines = render_credential(token, color=False, now=NOW)

        # Assert
        assert lines[0] == "Access Key ID     : AK"
        assert lines[3].startswith("Expiration        : ")
        assert lines[3].endswith("[Expires in 45 minute(s)]")

    def test_expired(self) -> None:
        token = AlibabaStsToken("AK", "SK", "ST", "2020-01-01T00:00:00Z")

        assert render_credential(token, color=False, now=NOW)[3].endswith("[Expired]")

    def test_unparseable_expiration_shown_verbatim(self) -> None:
        token = AlibabaStsToken("AK", "SK", "ST", "tomorrow")

        assert render_credential(token, color=False, now=NOW)[3] == "Expiration        : tomorrow"


class TestOidcReport:
    """Tests for OIDC token rows."""

    def test_both_tokens_separated(self) -> None:
        """Given id and access tokens, a blank line separates their sections."""
        # Arrange
        id_token = _id_token(NOW + 600)
        token = OidcToken(
            response=TokenResponse(access_token="at", id_token=id_token, expires_in=3600, refresh_token="rt"),
            captured_at=NOW,
        )

        # Act
        lines = render_credential(token, color=False, now=NOW)

        # Assert
        assert lines[0] == f"ID Token          : {id_token}"
        assert lines[1].endswith("[Expires in 10 minute(s)]")
        assert lines[2] == ""
        assert lines[3] == "Access Token Type : Bearer"
        assert lines[4] == "Access Token      : at"
        assert lines[5].endswith("[Expires in 60 minute(s)]")
        assert lines[6] == "Refresh Token     : rt"

    def test_field_filter(self) -> None:
        """Given oidc_field access_token, the id token is omitted."""
        token = OidcToken(response=TokenResponse(access_token="at", id_token="idt"), captured_at=NOW)

        lines = render_credential(token, oidc_field="access_token", color=False, now=NOW)

        assert lines == ["Access Token Type : Bearer", "Access Token      : at"]


class TestCloudAccountReport:
    """Tests for cloud-account credential rows."""

    def test_without_access_credential(self) -> None:
        """Given no access credential, only identity rows are shown."""
        credential = CloudAccountCredential.model_validate({"cloudAccountId": "acc-1"})

        lines = render_credential(credential, color=False, now=NOW)

        assert len(lines) == 5
        assert lines[0] == f"{'Cloud Account ID'.ljust(31)}: acc-1"

    def test_colored_rows_have_ansi(self) -> None:
        credential = CloudAccountCredential.model_validate({"cloudAccountId": "acc-1"})

        assert "\x1b[" in render_credential(credential, now=NOW)[0]
