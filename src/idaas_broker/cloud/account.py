"""Client for the cloud-account credential endpoint."""

from __future__ import annotations

__all__ = ["CloudAccountClient"]

import httpx
from pydantic import ValidationError

from idaas_broker.cloud.models import CloudAccountCredential
from idaas_broker.constants import HTTP_TIMEOUT_SECONDS, USER_AGENT
from idaas_broker.exceptions import ProtocolError, UpstreamError
from idaas_broker.telemetry.system_logger import log_unsafe


class CloudAccountClient:
    """Exchanges an OIDC access token for a cloud-account credential."""

    def __init__(self, http_client: httpx.Client | None = None, timeout: float = HTTP_TIMEOUT_SECONDS) -> None:
        self._client = http_client or httpx.Client(timeout=timeout, headers={"User-Agent": USER_AGENT})
        self._owns_client = http_client is None

    def __enter__(self) -> CloudAccountClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client:
            self._client.close()

    def fetch(self, endpoint: str, role_external_id: str, access_token: str) -> CloudAccountCredential:
        """GET the credential for a role.

        Args:
            endpoint: Cloud-account endpoint URL.
            role_external_id: Sent as the cloudAccountRoleExternalId query parameter.
            access_token: Bearer token.

        Raises:
            UpstreamError: On transport failure or a non-200 status.
            ProtocolError: If the body is not a valid credential.
        """
        try:
            response = self._client.get(
                endpoint,
                params={"cloudAccountRoleExternalId": role_external_id},
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise UpstreamError(
                f"HTTP error fetching cloud account credential from {endpoint} (role {role_external_id}): {e}"
            ) from e

        log_unsafe("cloud_account_response", f"HTTP {response.status_code}", body=response.text)
        if response.status_code != 200:
            raise UpstreamError(
                f"Cloud account endpoint {endpoint} returned HTTP {response.status_code} (role {role_external_id})"
            )
        try:
            return CloudAccountCredential.model_validate_json(response.content)
        except ValidationError as e:
            raise ProtocolError(f"Malformed cloud account credential from {endpoint}: {e}") from e
