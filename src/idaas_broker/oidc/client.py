"""HTTP client for an OIDC issuer.

Covers the three endpoints the broker talks to:
- discovery (.well-known/openid-configuration), cached under category "oidc"
- device authorization endpoint
- token endpoint, for every grant type

Transport failures raise UpstreamError. OAuth error bodies are returned as
TokenErrorResponse values so callers can branch on error code and status.
"""

from __future__ import annotations

__all__ = ["OidcClient", "discovery_policy"]

import hashlib
from typing import Any

import httpx
from pydantic import ValidationError

from idaas_broker.cache.policy import DISCOVERY_THRESHOLDS, ExpiryPolicy, ReadThroughCache
from idaas_broker.cache.store import CacheEntry
from idaas_broker.constants import (
    CATEGORY_OIDC,
    DEFAULT_SCOPE,
    DISCOVERY_DOCUMENT_LIFETIME_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    USER_AGENT,
)
from idaas_broker.exceptions import ProtocolError, UpstreamError
from idaas_broker.oidc.models import DeviceCodeChallenge, OpenIdConfiguration, TokenErrorResponse, TokenResponse
from idaas_broker.telemetry.system_logger import get_system_logger, log_unsafe

_logger = get_system_logger()


def _discovery_expires_at(entry: CacheEntry) -> float | None:
    return entry.captured_at + DISCOVERY_DOCUMENT_LIFETIME_SECONDS


discovery_policy = ExpiryPolicy(DISCOVERY_THRESHOLDS, _discovery_expires_at)


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class OidcClient:
    """Talks to one issuer.

    Usage:
        with OidcClient(issuer, cache) as client:
            metadata = client.discover()
            result = client.fetch_token(metadata.token_endpoint, form)
    """

    def __init__(
        self,
        issuer: str,
        cache: ReadThroughCache,
        http_client: httpx.Client | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            issuer: Issuer URL.
            cache: Read-through cache for the discovery document.
            http_client: Optional httpx client (for testing).
            timeout: Request timeout in seconds when the client is owned.
        """
        self._issuer = issuer.rstrip("/")
        self._cache = cache
        self._client = http_client or httpx.Client(timeout=timeout, headers={"User-Agent": USER_AGENT})
        self._owns_client = http_client is None

    def __enter__(self) -> OidcClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client:
            self._client.close()

    @property
    def issuer(self) -> str:
        return self._issuer

    def discover(self, *, force_new: bool = False) -> OpenIdConfiguration:
        """Return the issuer's discovery document, cached for up to 7 days.

        Raises:
            UpstreamError: If the document cannot be fetched.
            ProtocolError: If it is malformed.
        """
        key = f"issuer_{hashlib.sha256(self._issuer.encode()).hexdigest()[:32]}"
        entry = self._cache.get_or_fetch(
            CATEGORY_OIDC, key, discovery_policy, self._fetch_discovery, force_new=force_new
        )
        try:
            return OpenIdConfiguration.model_validate_json(entry.content)
        except ValidationError as e:
            raise ProtocolError(f"Cached discovery document for {self._issuer} is malformed: {e}") from e

    def _fetch_discovery(self) -> str:
        url = f"{self._issuer}/.well-known/openid-configuration"
        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            raise UpstreamError(f"HTTP error fetching discovery document {url}: {e}") from e
        if response.status_code != 200:
            raise UpstreamError(f"Discovery document {url} returned HTTP {response.status_code}")
        try:
            metadata = OpenIdConfiguration.model_validate(_json_body(response))
        except ValidationError as e:
            raise ProtocolError(f"Malformed discovery document from {url}: {e}") from e
        return metadata.model_dump_json()

    def request_device_code(
        self,
        endpoint: str,
        client_id: str,
        scope: str | None = None,
    ) -> DeviceCodeChallenge | TokenErrorResponse:
        """One call to the device authorization endpoint.

        Returns:
            The challenge, or the OAuth error body.

        Raises:
            UpstreamError: On transport failure or an unparseable error body.
            ProtocolError: If a 200 response is malformed.
        """
        form = {"client_id": client_id, "scope": scope or DEFAULT_SCOPE}
        log_unsafe("device_code_request", f"POST {endpoint}", form=form)
        try:
            response = self._client.post(endpoint, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise UpstreamError(f"HTTP error requesting device code from {endpoint}: {e}") from e

        body = _json_body(response)
        log_unsafe("device_code_response", f"HTTP {response.status_code}", body=body)
        if response.status_code == 200:
            if not isinstance(body, dict):
                raise ProtocolError(f"Device authorization response from {endpoint} is not a JSON object")
            return DeviceCodeChallenge.from_response(body)
        return self._error_response(endpoint, response, body)

    def fetch_token(self, endpoint: str, form: dict[str, str]) -> TokenResponse | TokenErrorResponse:
        """POST a grant to the token endpoint.

        Args:
            endpoint: Token endpoint URL.
            form: Form fields, including grant_type and client authentication.

        Returns:
            TokenResponse on HTTP 200, TokenErrorResponse for an OAuth error body.

        Raises:
            UpstreamError: On transport failure or an unparseable error body.
            ProtocolError: If a 200 response is malformed.
        """
        log_unsafe("token_request", f"POST {endpoint}", grant_type=form.get("grant_type"))
        try:
            response = self._client.post(endpoint, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise UpstreamError(f"HTTP error calling token endpoint {endpoint}: {e}") from e

        body = _json_body(response)
        log_unsafe("token_response", f"HTTP {response.status_code}", body=body)
        if response.status_code == 200:
            try:
                return TokenResponse.model_validate(body)
            except ValidationError as e:
                raise ProtocolError(f"Malformed token response from {endpoint}: {e}") from e
        return self._error_response(endpoint, response, body)

    @staticmethod
    def _error_response(endpoint: str, response: httpx.Response, body: Any) -> TokenErrorResponse:
        if not isinstance(body, dict) or not isinstance(body.get("error"), str):
            raise UpstreamError(
                f"{endpoint} returned HTTP {response.status_code} without an OAuth error body"
            )
        error = TokenErrorResponse(
            error=body["error"],
            error_description=body.get("error_description"),
            status_code=response.status_code,
        )
        _logger.debug(
            {
                "event": "oauth_error_response",
                "message": f"{endpoint} returned {error}",
                "error": error.error,
                "status_code": error.status_code,
            }
        )
        return error

