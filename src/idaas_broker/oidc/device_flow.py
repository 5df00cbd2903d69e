"""OAuth Device Authorization Grant (RFC 8628).

States:

    REQUEST_CHALLENGE -> DISPLAY_CHALLENGE -> POLLING -> SUCCESS | DENIED | FAILED

- REQUEST_CHALLENGE: up to 3 attempts, retried only on transport errors.
- DISPLAY_CHALLENGE: the presenter shows verification_uri_complete
  (optionally as a QR code or in a browser).
- POLLING: up to 100 polls. Each poll sleeps the current interval first.
  authorization_pending keeps polling, slow_down adds one second to the
  interval, access_denied is DENIED, any other error code is FAILED.
  Transport errors are counted; more than 3 in a row is FAILED, and any
  completed HTTP exchange resets the count.

SUCCESS returns the TokenResponse (cached under token_response when it
carries a refresh token). DENIED raises AccessDeniedError, FAILED raises
UpstreamError.
"""

from __future__ import annotations

__all__ = ["ChallengePresenter", "DeviceFlowEngine"]

import threading
import time
from collections.abc import Callable

from idaas_broker.cache.store import CacheStore
from idaas_broker.constants import (
    DEVICE_CODE_REQUEST_ATTEMPTS,
    DEVICE_FLOW_MAX_CONSECUTIVE_ERRORS,
    DEVICE_FLOW_MAX_POLLS,
    DEVICE_FLOW_SLOW_DOWN_INCREMENT_SECONDS,
    GRANT_TYPE_DEVICE_CODE,
)
from idaas_broker.exceptions import AccessDeniedError, ConfigurationError, UpstreamError
from idaas_broker.oidc.client import OidcClient
from idaas_broker.oidc.models import DeviceCodeChallenge, TokenErrorResponse, TokenResponse
from idaas_broker.oidc.refresh import save_refreshable_response
from idaas_broker.telemetry.system_logger import get_system_logger

ChallengePresenter = Callable[[DeviceCodeChallenge], None]

_logger = get_system_logger()


class DeviceFlowEngine:
    """Runs the device authorization grant against one issuer.

    Usage:
        engine = DeviceFlowEngine(client, store, client_id="app", presenter=show)
        token = engine.run(cache_key)
    """

    def __init__(
        self,
        client: OidcClient,
        store: CacheStore,
        client_id: str,
        client_secret: str | None = None,
        scope: str | None = None,
        presenter: ChallengePresenter | None = None,
        cancel: threading.Event | None = None,
        max_polls: int = DEVICE_FLOW_MAX_POLLS,
    ) -> None:
        """Initialize the engine.

        Args:
            client: Issuer client.
            store: Cache store for refresh-capable responses.
            client_id: Client identifier.
            client_secret: Optional client secret sent on token polls.
            scope: Requested scope ("openid" when unset).
            presenter: Shows the challenge to the user.
            cancel: Set to abort polling.
            max_polls: Poll budget.
        """
        self._client = client
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._scope = scope
        self._presenter = presenter
        self._cancel = cancel
        self._max_polls = max_polls

    def run(self, cache_key: str | None = None, *, force_new_discovery: bool = False) -> TokenResponse:
        """Run the full flow.

        Args:
            cache_key: Key for caching a refresh-capable response; None skips caching.
            force_new_discovery: Re-fetch the discovery document.

        Returns:
            The token response.

        Raises:
            AccessDeniedError: The user denied the request.
            ConfigurationError: The issuer has no device authorization endpoint.
            UpstreamError: The flow failed or was cancelled.
            ProtocolError: The issuer returned a malformed response.
        """
        metadata = self._client.discover(force_new=force_new_discovery)
        if not metadata.device_authorization_endpoint:
            raise ConfigurationError(f"Issuer {self._client.issuer} has no device_authorization_endpoint")

        challenge = self.request_challenge(metadata.device_authorization_endpoint)
        if self._presenter is not None:
            self._presenter(challenge)

        token = self.poll(metadata.token_endpoint, challenge)
        if cache_key is not None:
            save_refreshable_response(self._store, cache_key, token)
        return token

    def request_challenge(self, endpoint: str) -> DeviceCodeChallenge:
        """Request a device code, retrying transport failures.

        Raises:
            UpstreamError: All attempts failed, or the endpoint returned an OAuth error.
        """
        last_error: UpstreamError | None = None
        for attempt in range(1, DEVICE_CODE_REQUEST_ATTEMPTS + 1):
            try:
                result = self._client.request_device_code(endpoint, self._client_id, self._scope)
            except UpstreamError as e:
                last_error = e
                _logger.warning(
                    {
                        "event": "device_code_request_failed",
                        "message": f"Device code request #{attempt} failed: {e}",
                        "attempt": attempt,
                    }
                )
                continue

            if isinstance(result, TokenErrorResponse):
                raise UpstreamError(f"Device authorization request rejected: {result}")
            return result

        raise UpstreamError(
            f"Device code request failed after {DEVICE_CODE_REQUEST_ATTEMPTS} attempts: {last_error}"
        ) from last_error

    def poll(self, token_endpoint: str, challenge: DeviceCodeChallenge) -> TokenResponse:
        """Poll the token endpoint until a terminal outcome.

        Raises:
            AccessDeniedError: access_denied was returned.
            UpstreamError: Any other failure, budget exhaustion or cancellation.
        """
        form = {
            "grant_type": GRANT_TYPE_DEVICE_CODE,
            "device_code": challenge.device_code,
            "client_id": self._client_id,
        }
        if self._client_secret:
            form["client_secret"] = self._client_secret

        interval = challenge.interval
        consecutive_errors = 0
        for poll in range(self._max_polls):
            _logger.debug({"event": "device_flow_sleep", "message": f"Sleep {interval}s, #{poll}"})
            self._sleep(interval)

            try:
                result = self._client.fetch_token(token_endpoint, form)
            except UpstreamError as e:
                consecutive_errors += 1
                if consecutive_errors > DEVICE_FLOW_MAX_CONSECUTIVE_ERRORS:
                    raise UpstreamError(f"Device flow polling failed: {e}") from e
                _logger.warning(
                    {
                        "event": "device_flow_poll_error",
                        "message": f"Polling error #{consecutive_errors}: {e}",
                    }
                )
                continue
            consecutive_errors = 0

            if isinstance(result, TokenResponse):
                _logger.debug({"event": "device_flow_success", "message": "Device authorization completed"})
                return result

            match result.error:
                case "authorization_pending":
                    continue
                case "slow_down":
                    interval += DEVICE_FLOW_SLOW_DOWN_INCREMENT_SECONDS
                case "access_denied":
                    raise AccessDeniedError(f"Device authorization denied: {result}")
                case _:
                    raise UpstreamError(f"Device authorization failed: {result}")

        raise UpstreamError(f"Device authorization not completed after {self._max_polls} polls")

    def _sleep(self, seconds: int) -> None:
        if self._cancel is None:
            time.sleep(seconds)
            return
        if self._cancel.wait(seconds):
            raise UpstreamError("Device authorization cancelled")
