"""Client authentication on token endpoint calls.

Two methods:
- client_secret: sent as a form field (client_secret_post)
- private_key_jwt (RFC 7523): a short-lived JWT signed by a JwtSigner,
  sent as client_assertion with the jwt-bearer assertion type

An assertion is built per call so every request carries a fresh jti.
"""

from __future__ import annotations

__all__ = ["ClientAuthenticator", "build_client_assertion"]

import time
import uuid

from idaas_broker.constants import CLIENT_ASSERTION_TYPE_JWT_BEARER, CLIENT_ASSERTION_VALIDITY_SECONDS
from idaas_broker.signer.base import JwtSigner
from idaas_broker.signer.jws import sign_jwt
from idaas_broker.telemetry.system_logger import get_system_logger

_logger = get_system_logger()


def build_client_assertion(
    signer: JwtSigner,
    client_id: str,
    token_endpoint: str,
    now: int | None = None,
    include_jti: bool = True,
) -> str:
    """Build an RFC 7523 client assertion.

    Claims: iss = sub = client_id, aud = token_endpoint, iat = now,
    exp = now + 5 minutes, and a random jti unless disabled.

    Raises:
        SignerError: If signing fails.
    """
    issued_at = int(time.time()) if now is None else now
    claims: dict[str, object] = {
        "iss": client_id,
        "sub": client_id,
        "aud": token_endpoint,
        "iat": issued_at,
        "exp": issued_at + CLIENT_ASSERTION_VALIDITY_SECONDS,
    }
    if include_jti:
        claims["jti"] = uuid.uuid4().hex
    return sign_jwt(signer, claims)


class ClientAuthenticator:
    """Adds client authentication fields to a token request form."""

    def __init__(
        self,
        client_id: str,
        client_secret: str | None = None,
        signer: JwtSigner | None = None,
        include_jti: bool = True,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self._signer = signer
        self._include_jti = include_jti

    def form_fields(self, token_endpoint: str) -> dict[str, str]:
        """Return client_id plus secret or assertion fields.

        Raises:
            SignerError: If the assertion cannot be signed.
        """
        fields = {"client_id": self.client_id}
        if self._signer is not None:
            _logger.info(
                {
                    "event": "client_assertion_signing",
                    "message": "Signing client assertion; interact with your security token if required",
                }
            )
            fields["client_assertion_type"] = CLIENT_ASSERTION_TYPE_JWT_BEARER
            fields["client_assertion"] = build_client_assertion(
                self._signer, self.client_id, token_endpoint, include_jti=self._include_jti
            )
        elif self._client_secret:
            fields["client_secret"] = self._client_secret
        return fields
