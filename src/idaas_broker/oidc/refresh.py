"""Refresh-token fast path.

Before any interactive flow, the broker tries to renew silently with the
refresh token cached under category "token_response":

    no cached response / no refresh token   -> None, no network call
    new token response                      -> cached if it has a refresh
                                               token, returned
    HTTP 429                                -> None, cache kept (transient)
    any other 4xx                           -> None, cached entry deleted
    transport error, 5xx, malformed reply   -> None, cache kept
"""

from __future__ import annotations

__all__ = ["RefreshEngine", "save_refreshable_response"]

from pydantic import ValidationError

from idaas_broker.cache.policy import ReadThroughCache
from idaas_broker.cache.store import CacheStore
from idaas_broker.constants import CATEGORY_TOKEN_RESPONSE, GRANT_TYPE_REFRESH_TOKEN
from idaas_broker.exceptions import ProtocolError, UpstreamError
from idaas_broker.oidc.client import OidcClient
from idaas_broker.oidc.client_auth import ClientAuthenticator
from idaas_broker.oidc.models import TokenErrorResponse, TokenResponse
from idaas_broker.telemetry.system_logger import get_system_logger

_logger = get_system_logger()

_TOO_MANY_REQUESTS = 429


def save_refreshable_response(store: CacheStore, key: str, token: TokenResponse) -> bool:
    """Cache `token` under token_response if it carries a refresh token.

    Returns:
        True if the response was written.
    """
    if not token.has_refresh_token:
        return False
    store.put(CATEGORY_TOKEN_RESPONSE, key, token.to_cache_content())
    return True


class RefreshEngine:
    """Silent renewal with a cached refresh token."""

    def __init__(
        self,
        client: OidcClient,
        cache: ReadThroughCache,
        authenticator: ClientAuthenticator,
    ) -> None:
        self._client = client
        self._cache = cache
        self._authenticator = authenticator

    def refresh(self, key: str, *, force_new_discovery: bool = False) -> TokenResponse | None:
        """Try to renew the token response cached under `key`.

        Args:
            key: Cache key of the token_response entry.
            force_new_discovery: Re-fetch the discovery document.

        Returns:
            The renewed response, or None when silent renewal is not possible.

        Raises:
            SignerError: If a client assertion cannot be signed.
            StorageError: If the cache cannot be read or written.
        """
        cached = self._read_cached(key)
        if cached is None or not cached.has_refresh_token:
            return None
        assert cached.refresh_token is not None

        try:
            metadata = self._client.discover(force_new=force_new_discovery)
            form = {
                "grant_type": GRANT_TYPE_REFRESH_TOKEN,
                "refresh_token": cached.refresh_token,
                **self._authenticator.form_fields(metadata.token_endpoint),
            }
            result = self._client.fetch_token(metadata.token_endpoint, form)
        except (UpstreamError, ProtocolError) as e:
            _logger.warning(
                {
                    "event": "token_refresh_failed",
                    "message": f"Token refresh failed: {e}",
                    "error_type": type(e).__name__,
                }
            )
            return None

        if isinstance(result, TokenErrorResponse):
            self._handle_error(key, result)
            return None

        save_refreshable_response(self._cache.store, key, result)
        _logger.debug({"event": "token_refreshed", "message": "Token renewed with refresh token"})
        return result

    def _read_cached(self, key: str) -> TokenResponse | None:
        entry = self._cache.read(CATEGORY_TOKEN_RESPONSE, key)
        if entry is None:
            return None
        try:
            return TokenResponse.model_validate_json(entry.content)
        except ValidationError as e:
            _logger.warning(
                {
                    "event": "token_response_unparseable",
                    "message": f"Ignoring cached token response {key}: {e}",
                }
            )
            return None

    def _handle_error(self, key: str, error: TokenErrorResponse) -> None:
        permanent = error.status_code != _TOO_MANY_REQUESTS and 400 <= error.status_code < 500
        _logger.warning(
            {
                "event": "token_refresh_rejected",
                "message": f"Token refresh rejected: {error}",
                "status_code": error.status_code,
                "error": error.error,
                "cache_invalidated": permanent,
            }
        )
        if permanent:
            self._cache.store.delete(CATEGORY_TOKEN_RESPONSE, key)
