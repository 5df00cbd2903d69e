"""OIDC token provider: cache, refresh, then the configured grant.

The resulting TokenResponse is cached under category "oidc_token" and
governed by OIDC_TOKEN_THRESHOLDS. On a miss or expiry the provider tries,
in order:

1. the refresh-token fast path (skipped when force_new is set)
2. the configured grant: device code (interactive) or client credentials
"""

from __future__ import annotations

__all__ = ["OidcTokenProvider", "oidc_token_policy"]

import threading
from collections.abc import Callable

import httpx
from pydantic import ValidationError

from idaas_broker.cache.policy import OIDC_TOKEN_THRESHOLDS, ExpiryPolicy, ReadThroughCache
from idaas_broker.cache.store import CacheEntry
from idaas_broker.config import ClientCredentialsConfig, DeviceCodeConfig, OidcTokenProviderConfig, SignerDescriptor
from idaas_broker.constants import (
    CATEGORY_OIDC_TOKEN,
    DEFAULT_SCOPE,
    GRANT_TYPE_CLIENT_CREDENTIALS,
    HTTP_TIMEOUT_SECONDS,
)
from idaas_broker.exceptions import ProtocolError, UpstreamError
from idaas_broker.oidc.client import OidcClient
from idaas_broker.oidc.client_auth import ClientAuthenticator
from idaas_broker.oidc.device_flow import ChallengePresenter, DeviceFlowEngine
from idaas_broker.oidc.models import TokenErrorResponse, TokenResponse
from idaas_broker.oidc.presenter import ConsoleChallengePresenter
from idaas_broker.oidc.refresh import RefreshEngine, save_refreshable_response
from idaas_broker.signer.base import JwtSigner
from idaas_broker.signer.factory import create_signer


def _token_expires_at(entry: CacheEntry) -> float | None:
    try:
        token = TokenResponse.model_validate_json(entry.content)
    except ValidationError:
        return None
    return token.expires_at(entry.captured_at)


oidc_token_policy = ExpiryPolicy(OIDC_TOKEN_THRESHOLDS, _token_expires_at)


class OidcTokenProvider:
    """Produces a valid TokenResponse for one OidcTokenProviderConfig."""

    def __init__(
        self,
        config: OidcTokenProviderConfig,
        cache: ReadThroughCache,
        http_client: httpx.Client | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        presenter: ChallengePresenter | None = None,
        cancel: threading.Event | None = None,
        signer_factory: Callable[[SignerDescriptor], JwtSigner] = create_signer,
    ) -> None:
        """Initialize the provider.

        Args:
            config: Provider configuration.
            cache: Read-through cache.
            http_client: Optional httpx client (for testing).
            timeout: HTTP timeout when the client is owned.
            presenter: Overrides the console presenter for device challenges.
            cancel: Set to abort device-flow polling.
            signer_factory: Builds the client assertion signer.
        """
        self._config = config
        self._cache = cache
        self._http_client = http_client
        self._timeout = timeout
        self._presenter = presenter
        self._cancel = cancel
        self._signer_factory = signer_factory

    def fetch(self, key: str, *, force_new: bool = False) -> TokenResponse:
        """Return a valid token response for `key`.

        Raises:
            AccessDeniedError: The user denied device authorization.
            BrokerError: Any other failure to obtain a token.
        """
        token, _ = self.fetch_with_capture_time(key, force_new=force_new)
        return token

    def fetch_with_capture_time(self, key: str, *, force_new: bool = False) -> tuple[TokenResponse, float]:
        """Like fetch(), also returning when the response was obtained."""
        entry = self._cache.get_or_fetch(
            CATEGORY_OIDC_TOKEN,
            key,
            oidc_token_policy,
            lambda: self._obtain(key, force_new).to_cache_content(),
            force_new=force_new,
        )
        try:
            return TokenResponse.model_validate_json(entry.content), entry.captured_at
        except ValidationError as e:
            raise ProtocolError(f"Cached token response {key} is malformed: {e}") from e

    def _obtain(self, key: str, force_new: bool) -> TokenResponse:
        with OidcClient(self._config.issuer, self._cache, self._http_client, self._timeout) as client:
            authenticator = self._authenticator()
            if not force_new:
                refreshed = RefreshEngine(client, self._cache, authenticator).refresh(key)
                if refreshed is not None:
                    return refreshed

            if self._config.device_code is not None:
                return self._device_code(client, self._config.device_code, key, force_new)
            assert self._config.client_credentials is not None
            return self._client_credentials(client, self._config.client_credentials, authenticator, key, force_new)

    def _authenticator(self) -> ClientAuthenticator:
        if self._config.device_code is not None:
            device_code = self._config.device_code
            return ClientAuthenticator(device_code.client_id, client_secret=device_code.client_secret)
        credentials = self._config.client_credentials
        assert credentials is not None
        signer = (
            self._signer_factory(credentials.client_assertion_signer)
            if credentials.client_assertion_signer is not None
            else None
        )
        return ClientAuthenticator(
            credentials.client_id,
            client_secret=credentials.client_secret,
            signer=signer,
            include_jti=credentials.assertion_jti,
        )

    def _device_code(self, client: OidcClient, config: DeviceCodeConfig, key: str, force_new: bool) -> TokenResponse:
        presenter = self._presenter or ConsoleChallengePresenter(
            show_qr_code=config.show_qr_code,
            small_qr_code=config.small_qr_code,
            auto_open_url=config.auto_open_url,
        )
        engine = DeviceFlowEngine(
            client,
            self._cache.store,
            client_id=config.client_id,
            client_secret=config.client_secret,
            scope=config.scope,
            presenter=presenter,
            cancel=self._cancel,
        )
        return engine.run(key, force_new_discovery=force_new)

    def _client_credentials(
        self,
        client: OidcClient,
        config: ClientCredentialsConfig,
        authenticator: ClientAuthenticator,
        key: str,
        force_new: bool,
    ) -> TokenResponse:
        metadata = client.discover(force_new=force_new)
        form = {
            "grant_type": GRANT_TYPE_CLIENT_CREDENTIALS,
            "scope": config.scope or DEFAULT_SCOPE,
            **authenticator.form_fields(metadata.token_endpoint),
        }
        result = client.fetch_token(metadata.token_endpoint, form)
        if isinstance(result, TokenErrorResponse):
            raise UpstreamError(f"Client credentials grant failed: {result}")
        save_refreshable_response(self._cache.store, key, result)
        return result
