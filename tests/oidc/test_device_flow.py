"""Tests for the device authorization grant state machine."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest

from idaas_broker.cache.store import CacheStore
from idaas_broker.constants import CATEGORY_TOKEN_RESPONSE
from idaas_broker.exceptions import AccessDeniedError, ConfigurationError, UpstreamError
from idaas_broker.oidc.client import OidcClient
from idaas_broker.oidc.device_flow import DeviceFlowEngine
from idaas_broker.oidc.models import DeviceCodeChallenge, OpenIdConfiguration, TokenErrorResponse, TokenResponse

TOKEN_ENDPOINT = "https://idaas.example.com/oidc/token"
DEVICE_ENDPOINT = "https://idaas.example.com/oidc/device/code"
KEY = "dev_0123"

CHALLENGE = DeviceCodeChallenge(
    device_code="dc",
    user_code="ABCD-EFGH",
    verification_uri="https://idaas.example.com/device",
    verification_uri_complete="https://idaas.example.com/device?user_code=ABCD-EFGH",
    interval=5,
    expires_in=600,
)


def _pending(status: int = 400) -> TokenErrorResponse:
    return TokenErrorResponse(error="authorization_pending", status_code=status)


def _token(refresh_token: str | None = "rt") -> TokenResponse:
    return TokenResponse(access_token="at", id_token="idt", refresh_token=refresh_token, expires_in=3600)


@pytest.fixture
def oidc_client() -> MagicMock:
    client = MagicMock(spec=OidcClient)
    client.issuer = "https://idaas.example.com/oidc"
    client.discover.return_value = OpenIdConfiguration(
        token_endpoint=TOKEN_ENDPOINT, device_authorization_endpoint=DEVICE_ENDPOINT
    )
    client.request_device_code.return_value = CHALLENGE
    return client


class TestRun:
    """Tests for DeviceFlowEngine.run."""

    def test_pending_slow_down_then_token(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given pending x3, slow_down, token: five polls with the interval bumped once."""
        # Arrange
        oidc_client.fetch_token.side_effect = [
            _pending(),
            _pending(),
            _pending(),
            TokenErrorResponse(error="slow_down", status_code=400),
            _token(),
        ]
        presenter = MagicMock()
        engine = DeviceFlowEngine(oidc_client, store, client_id="app", presenter=presenter)

        # Act
        with patch("time.sleep") as sleep:
            token = engine.run(KEY)

        # Assert
        assert token.access_token == "at"
        assert oidc_client.fetch_token.call_count == 5
        assert [c.args[0] for c in sleep.call_args_list] == [5, 5, 5, 5, 6]
        presenter.assert_called_once_with(CHALLENGE)
        assert store.get(CATEGORY_TOKEN_RESPONSE, KEY) is not None

    def test_token_without_refresh_not_persisted(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given a token response without a refresh token, nothing is cached."""
        oidc_client.fetch_token.return_value = _token(refresh_token=None)

        with patch("time.sleep"):
            DeviceFlowEngine(oidc_client, store, client_id="app").run(KEY)

        assert store.get(CATEGORY_TOKEN_RESPONSE, KEY) is None

    def test_poll_form(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given a client secret, polls with the device_code grant and the secret."""
        oidc_client.fetch_token.return_value = _token()

        with patch("time.sleep"):
            DeviceFlowEngine(oidc_client, store, client_id="app", client_secret="s").run()

        oidc_client.fetch_token.assert_called_once_with(
            TOKEN_ENDPOINT,
            {
                "grant_type": "urn:ietf:params:oauth:grant-type:device_code",
                "device_code": "dc",
                "client_id": "app",
                "client_secret": "s",
            },
        )

    def test_access_denied_stops_immediately(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given access_denied, raises AccessDeniedError without further polls."""
        oidc_client.fetch_token.side_effect = [_pending(), TokenErrorResponse(error="access_denied", status_code=400)]

        with patch("time.sleep"), pytest.raises(AccessDeniedError):
            DeviceFlowEngine(oidc_client, store, client_id="app").run(KEY)

        assert oidc_client.fetch_token.call_count == 2

    def test_unknown_error_fails(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given expired_token, raises UpstreamError."""
        oidc_client.fetch_token.return_value = TokenErrorResponse(error="expired_token", status_code=400)

        with patch("time.sleep"), pytest.raises(UpstreamError):
            DeviceFlowEngine(oidc_client, store, client_id="app").run(KEY)

    def test_no_device_endpoint(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given discovery without device_authorization_endpoint, raises ConfigurationError."""
        oidc_client.discover.return_value = OpenIdConfiguration(token_endpoint=TOKEN_ENDPOINT)

        with pytest.raises(ConfigurationError):
            DeviceFlowEngine(oidc_client, store, client_id="app").run(KEY)

        oidc_client.request_device_code.assert_not_called()


class TestPollErrors:
    """Tests for transport error counting and the poll budget."""

    def test_four_consecutive_transport_errors_fail(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given more than three transport errors in a row, polling stops."""
        oidc_client.fetch_token.side_effect = UpstreamError("connection reset")

        with patch("time.sleep"), pytest.raises(UpstreamError):
            DeviceFlowEngine(oidc_client, store, client_id="app").poll(TOKEN_ENDPOINT, CHALLENGE)

        assert oidc_client.fetch_token.call_count == 4

    def test_completed_exchange_resets_error_count(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given errors interleaved with pending responses, polling continues to success."""
        failure = UpstreamError("connection reset")
        oidc_client.fetch_token.side_effect = [failure] * 3 + [_pending()] + [failure] * 3 + [_token()]

        with patch("time.sleep"):
            token = DeviceFlowEngine(oidc_client, store, client_id="app").poll(TOKEN_ENDPOINT, CHALLENGE)

        assert token.access_token == "at"
        assert oidc_client.fetch_token.call_count == 8

    def test_poll_budget_exhausted(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given only pending responses, stops after max_polls."""
        oidc_client.fetch_token.return_value = _pending()

        with patch("time.sleep"), pytest.raises(UpstreamError, match="3 polls"):
            DeviceFlowEngine(oidc_client, store, client_id="app", max_polls=3).poll(TOKEN_ENDPOINT, CHALLENGE)

        assert oidc_client.fetch_token.call_count == 3

    def test_cancel_aborts_wait(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given a set cancel event, raises before polling."""
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(UpstreamError, match="cancelled"):
            DeviceFlowEngine(oidc_client, store, client_id="app", cancel=cancel).poll(TOKEN_ENDPOINT, CHALLENGE)

        oidc_client.fetch_token.assert_not_called()


class TestRequestChallenge:
    """Tests for device code request retries."""

    def test_transport_errors_retried(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given two failures then a challenge, returns the challenge."""
        oidc_client.request_device_code.side_effect = [UpstreamError("a"), UpstreamError("b"), CHALLENGE]

        challenge = DeviceFlowEngine(oidc_client, store, client_id="app").request_challenge(DEVICE_ENDPOINT)

        assert challenge == CHALLENGE
        assert oidc_client.request_device_code.call_count == 3

    def test_three_failures_give_up(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given three transport failures, raises UpstreamError."""
        oidc_client.request_device_code.side_effect = UpstreamError("down")

        with pytest.raises(UpstreamError, match="3 attempts"):
            DeviceFlowEngine(oidc_client, store, client_id="app").request_challenge(DEVICE_ENDPOINT)

    def test_oauth_error_not_retried(self, oidc_client: MagicMock, store: CacheStore) -> None:
        """Given an OAuth error body, raises without retrying."""
        oidc_client.request_device_code.return_value = TokenErrorResponse(error="invalid_client", status_code=401)

        with pytest.raises(UpstreamError):
            DeviceFlowEngine(oidc_client, store, client_id="app").request_challenge(DEVICE_ENDPOINT)

        oidc_client.request_device_code.assert_called_once()
