"""Tests for the console device-code presenter."""

from __future__ import annotations

import webbrowser
from unittest.mock import patch

import pytest

from idaas_broker.oidc.models import DeviceCodeChallenge
from idaas_broker.oidc.presenter import ConsoleChallengePresenter, render_qr_code

CHALLENGE = DeviceCodeChallenge(
    device_code="dc",
    user_code="WDJB-MJHT",
    verification_uri="https://idaas.example.com/device",
    verification_uri_complete="https://idaas.example.com/device?user_code=WDJB-MJHT",
    interval=5,
    expires_in=600,
)


class TestRenderQrCode:
    def test_full_size_rows_are_square(self) -> None:
        """Given full-size mode, every row has two characters per module."""
        rows = render_qr_code("https://idaas.example.com/device").splitlines()

        assert len(rows) > 20
        assert all(len(row) == 2 * len(rows) for row in rows)

    def test_small_is_shorter(self) -> None:
        data = "https://idaas.example.com/device"

        assert len(render_qr_code(data, small=True).splitlines()) < len(render_qr_code(data).splitlines())


class TestConsoleChallengePresenter:
    """Tests for ConsoleChallengePresenter."""

    def test_prints_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Given a challenge, URL and user code go to stderr, stdout stays empty."""
        # Act
        ConsoleChallengePresenter()(CHALLENGE)

        # Assert
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "WDJB-MJHT" in captured.err
        assert "https://idaas.example.com/device?user_code=WDJB-MJHT" in captured.err
        assert "[RECOMMENDED]" in captured.err
        assert "scan QR code" not in captured.err

    def test_qr_code_shown(self, capsys: pytest.CaptureFixture[str]) -> None:
        ConsoleChallengePresenter(show_qr_code=True)(CHALLENGE)

        assert "Please scan QR code:" in capsys.readouterr().err

    def test_auto_open_url(self) -> None:
        with patch("webbrowser.open") as open_url:
            ConsoleChallengePresenter(auto_open_url=True)(CHALLENGE)

        open_url.assert_called_once_with(CHALLENGE.verification_uri_complete)

    def test_browser_failure_is_reported(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Given a browser error, the challenge is still printed."""
        with patch("webbrowser.open", side_effect=webbrowser.Error("no browser")):
            ConsoleChallengePresenter(auto_open_url=True)(CHALLENGE)

        err = capsys.readouterr().err
        assert "Could not open browser automatically: no browser" in err
        assert "WDJB-MJHT" in err
