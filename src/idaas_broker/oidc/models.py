"""OIDC wire models: discovery, device challenge, token responses."""

from __future__ import annotations

__all__ = [
    "DeviceCodeChallenge",
    "OpenIdConfiguration",
    "TokenErrorResponse",
    "TokenResponse",
]

from dataclasses import dataclass
from typing import Any

import jwt
from pydantic import BaseModel, ConfigDict

from idaas_broker.constants import DEVICE_FLOW_DEFAULT_INTERVAL_SECONDS
from idaas_broker.exceptions import ProtocolError


class OpenIdConfiguration(BaseModel):
    """Subset of the OpenID Provider metadata the broker uses."""

    issuer: str | None = None
    token_endpoint: str
    device_authorization_endpoint: str | None = None

    model_config = ConfigDict(extra="ignore")


class TokenResponse(BaseModel):
    """Successful token endpoint response (RFC 6749 section 5.1).

    expires_in is relative to the time the response was captured, so the
    absolute expiry is captured_at + expires_in.
    """

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    id_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None

    model_config = ConfigDict(extra="ignore")

    def to_cache_content(self) -> str:
        """JSON for the cache, without unset fields."""
        return self.model_dump_json(exclude_none=True)

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def expires_at(self, captured_at: float) -> float | None:
        """Absolute expiry in Unix seconds.

        Uses expires_in when present, else the id_token "exp" claim
        (read without verification). None when neither is available.
        """
        if self.expires_in is not None:
            return captured_at + self.expires_in
        return self.id_token_expires_at()

    def id_token_expires_at(self) -> float | None:
        """The id_token "exp" claim, read without signature verification."""
        if not self.id_token:
            return None
        try:
            claims = jwt.decode(self.id_token, options={"verify_signature": False})
        except jwt.PyJWTError:
            return None
        exp = claims.get("exp")
        if isinstance(exp, int | float):
            return float(exp)
        return None

    def token_for(self, token_type: str) -> str | None:
        """Return the id_token or access_token field."""
        if token_type == "id_token":
            return self.id_token
        return self.access_token


class TokenErrorResponse(BaseModel):
    """OAuth error body plus the HTTP status it arrived with."""

    error: str
    error_description: str | None = None
    status_code: int

    def __str__(self) -> str:
        detail = f": {self.error_description}" if self.error_description else ""
        return f"{self.error} (HTTP {self.status_code}){detail}"


@dataclass(frozen=True)
class DeviceCodeChallenge:
    """Response from the device authorization endpoint (RFC 8628 section 3.2).

    Attributes:
        device_code: Code used to poll for tokens (never shown to the user).
        user_code: Code the user enters in the browser.
        verification_uri: URL the user opens.
        verification_uri_complete: URL with the user code embedded.
        interval: Polling interval in seconds.
        expires_in: Seconds until the codes expire.
    """

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str
    interval: int
    expires_in: int

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> DeviceCodeChallenge:
        """Parse the endpoint's JSON body.

        Raises:
            ProtocolError: If a required field is missing or mistyped.
        """
        try:
            verification_uri = str(data["verification_uri"])
            return cls(
                device_code=str(data["device_code"]),
                user_code=str(data["user_code"]),
                verification_uri=verification_uri,
                verification_uri_complete=str(data.get("verification_uri_complete") or verification_uri),
                interval=int(data.get("interval") or DEVICE_FLOW_DEFAULT_INTERVAL_SECONDS),
                expires_in=int(data.get("expires_in") or 0),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed device authorization response: {e}") from e
