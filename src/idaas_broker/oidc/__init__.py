"""OpenID Connect flows: discovery, device code, refresh, client credentials."""

from __future__ import annotations

__all__ = [
    "ClientAuthenticator",
    "DeviceCodeChallenge",
    "DeviceFlowEngine",
    "OidcClient",
    "OidcTokenProvider",
    "OpenIdConfiguration",
    "RefreshEngine",
    "TokenErrorResponse",
    "TokenResponse",
    "build_client_assertion",
]

from idaas_broker.oidc.client import OidcClient
from idaas_broker.oidc.client_auth import ClientAuthenticator, build_client_assertion
from idaas_broker.oidc.device_flow import DeviceFlowEngine
from idaas_broker.oidc.models import DeviceCodeChallenge, OpenIdConfiguration, TokenErrorResponse, TokenResponse
from idaas_broker.oidc.provider import OidcTokenProvider
from idaas_broker.oidc.refresh import RefreshEngine
