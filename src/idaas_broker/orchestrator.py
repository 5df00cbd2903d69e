"""Answers "give me a valid credential for profile X".

Two cache layers nest: the cloud_token entry for a cloud-account profile
is renewed by a fetch that itself reads the profile's oidc_token entry.
Locks are always taken outer (cloud_token) before inner (oidc_token), so
concurrent callers cannot deadlock.
"""

from __future__ import annotations

__all__ = ["CredentialOrchestrator", "FetchOptions"]

import threading
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from idaas_broker.cache.locks import KeyLockRegistry
from idaas_broker.cache.policy import ReadThroughCache
from idaas_broker.cache.store import CacheStore
from idaas_broker.cloud.account import CloudAccountClient
from idaas_broker.cloud.models import CloudAccountCredential
from idaas_broker.cloud.sts import VendorStsToken, cloud_token_policy, convert_to_vendor_sts
from idaas_broker.config import BrokerConfig, CloudAccountConfig, OidcTokenProviderConfig, cache_key
from idaas_broker.constants import CATEGORY_CLOUD_TOKEN, USER_AGENT
from idaas_broker.context import BrokerContext
from idaas_broker.credentials import Credential, OidcToken
from idaas_broker.exceptions import CredentialUnavailable, NotCloudProfileError, ProtocolError
from idaas_broker.oidc.device_flow import ChallengePresenter
from idaas_broker.oidc.provider import OidcTokenProvider
from idaas_broker.telemetry.system_logger import get_system_logger

_logger = get_system_logger()


@dataclass(frozen=True)
class FetchOptions:
    """Per-request cache bypass flags.

    Attributes:
        force_new: Bypass every cache layer, including the OIDC token.
        force_new_cloud_credential: Bypass only the cloud_token layer.
    """

    force_new: bool = False
    force_new_cloud_credential: bool = False


class CredentialOrchestrator:
    """Resolves profiles and drives the providers behind them.

    One instance may serve concurrent requests; the per-key locks in the
    shared ReadThroughCache keep upstream fetches single-flight.
    """

    def __init__(
        self,
        context: BrokerContext,
        http_client: httpx.Client | None = None,
        presenter: ChallengePresenter | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            context: Invocation context.
            http_client: Shared httpx client; created (and owned) when None.
            presenter: Device challenge presenter; console when None.
            cancel: Set to abort device-flow polling.
        """
        self._context = context
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.Client(
            timeout=context.http_timeout, headers={"User-Agent": USER_AGENT}
        )
        self._presenter = presenter
        self._cancel = cancel
        store = CacheStore(context.cache_dir, context.key_provider)
        self._cache = ReadThroughCache(store, KeyLockRegistry(store))

    def __enter__(self) -> CredentialOrchestrator:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._http_client.close()

    def load_config(self) -> BrokerConfig:
        """Read the configuration file (again) from the context path."""
        return BrokerConfig.load(self._context.config_path)

    def fetch(self, profile: str | None, options: FetchOptions | None = None) -> Credential:
        """Return a valid credential for a profile.

        An oidc_token profile yields an OidcToken; a cloud_account profile
        yields the vendor-neutral CloudAccountCredential.

        Raises:
            ConfigurationError: Missing or invalid configuration.
            SignerError: The assertion signer is unusable.
            AccessDeniedError: The user denied device authorization.
            UpstreamError: The issuer or cloud endpoint failed.
            ProtocolError: A malformed upstream response.
        """
        options = options or FetchOptions()
        name, profile_config = self.load_config().resolve_profile(profile)
        _logger.debug({"event": "credential_fetch", "message": f"Fetching credential for profile {name}"})

        if profile_config.oidc_token is not None:
            return self._oidc_token(name, profile_config.oidc_token, options.force_new)
        assert profile_config.cloud_account is not None
        return self._cloud_account(name, profile_config.cloud_account, options)

    def fetch_vendor_sts(self, profile: str | None, options: FetchOptions | None = None) -> VendorStsToken:
        """Fetch a cloud-account credential and convert it to vendor STS form.

        The profile is checked before any upstream call, so an OIDC token
        profile never starts a grant or a device flow here.

        Raises:
            NotCloudProfileError: If the profile is not a cloud-account profile.
            ConversionError: If the credential's vendor has no mapping.
        """
        options = options or FetchOptions()
        name, profile_config = self.load_config().resolve_profile(profile)
        if profile_config.cloud_account is None:
            raise NotCloudProfileError(f"Profile {name} does not yield a cloud account credential")
        return convert_to_vendor_sts(self._cloud_account(name, profile_config.cloud_account, options))

    def _provider(self, config: OidcTokenProviderConfig) -> OidcTokenProvider:
        return OidcTokenProvider(
            config,
            self._cache,
            http_client=self._http_client,
            timeout=self._context.http_timeout,
            presenter=self._presenter,
            cancel=self._cancel,
        )

    def _oidc_token(self, profile: str, config: OidcTokenProviderConfig, force_new: bool) -> OidcToken:
        response, captured_at = self._provider(config).fetch_with_capture_time(
            cache_key(profile, config), force_new=force_new
        )
        return OidcToken(response=response, captured_at=captured_at, token_type=config.token_type)

    def _cloud_account(self, profile: str, config: CloudAccountConfig, options: FetchOptions) -> CloudAccountCredential:
        provider = self._provider(config.access_token_provider)
        oidc_key = cache_key(profile, config.access_token_provider)

        def exchange() -> str:
            token = provider.fetch(oidc_key, force_new=options.force_new)
            credential = CloudAccountClient(self._http_client).fetch(
                config.cloud_account_endpoint,
                config.cloud_account_role_external_id,
                token.access_token,
            )
            if credential.access_credential is None:
                raise CredentialUnavailable(
                    f"Cloud account endpoint returned no access credential for role "
                    f"{config.cloud_account_role_external_id}"
                )
            return credential.to_json()

        entry = self._cache.get_or_fetch(
            CATEGORY_CLOUD_TOKEN,
            cache_key(profile, config),
            cloud_token_policy,
            exchange,
            force_new=options.force_new or options.force_new_cloud_credential,
        )
        try:
            return CloudAccountCredential.model_validate_json(entry.content)
        except ValidationError as e:
            raise ProtocolError(f"Cached cloud account credential for {profile} is malformed: {e}") from e
