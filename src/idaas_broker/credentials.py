"""Closed set of credentials the broker hands to callers.

Consumers dispatch on Credential with an exhaustive match rather than
probing attributes.
"""

from __future__ import annotations

__all__ = ["Credential", "OidcToken"]

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from idaas_broker.cloud.models import AlibabaStsToken, CloudAccountCredential
from idaas_broker.oidc.models import TokenResponse


@dataclass(frozen=True)
class OidcToken:
    """An OIDC token response plus the field the profile selects.

    Attributes:
        response: Full token response as cached.
        captured_at: Unix time the response was obtained.
        token_type: Which token the profile hands out.
    """

    response: TokenResponse
    captured_at: float
    token_type: Literal["id_token", "access_token"] = "id_token"

    @property
    def token(self) -> str | None:
        return self.response.token_for(self.token_type)

    @property
    def expires_at(self) -> float | None:
        return self.response.expires_at(self.captured_at)

    def to_json(self, oidc_format: str = "type1") -> str:
        """The whole token as JSON.

        type1 keeps the token endpoint's snake_case fields. type2 uses
        camelCase keys and replaces expires_in with an absolute expiresAt
        (RFC 3339, UTC).

        Raises:
            ValueError: For an unknown format.
        """
        if oidc_format == "type1":
            return self.response.model_dump_json(exclude_none=True, indent=2)
        if oidc_format == "type2":
            expires_at = self.expires_at
            fields = {
                "tokenType": self.response.token_type,
                "accessToken": self.response.access_token,
                "idToken": self.response.id_token,
                "refreshToken": self.response.refresh_token,
                "scope": self.response.scope,
                "expiresAt": (
                    datetime.fromtimestamp(expires_at, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
                    if expires_at is not None
                    else None
                ),
            }
            return json.dumps({k: v for k, v in fields.items() if v is not None}, indent=2)
        raise ValueError(f"Unknown OIDC format: {oidc_format}")


Credential = AlibabaStsToken | OidcToken | CloudAccountCredential
