"""Profile configuration for idaas-broker.

Configuration is a single JSON file holding named profiles. Each profile
produces exactly one kind of credential:

- oidc_token: an ID token or access token from an OIDC provider
- cloud_account: a cloud-account credential obtained by exchanging an
  OIDC access token at the cloud-account endpoint

Example file:
    {
      "version": "1",
      "default_profile": "dev",
      "profiles": {
        "dev": {
          "cloud_account": {
            "cloud_account_endpoint": "https://idaas.example.com/cloud_account",
            "cloud_account_role_external_id": "role-123",
            "access_token_provider": {
              "device_code": {"issuer": "https://idaas.example.com", "client_id": "app"}
            }
          }
        }
      }
    }

Example usage:
    config = BrokerConfig.load(resolve_config_path(None))
    name, profile = config.resolve_profile("dev")
"""

from __future__ import annotations

__all__ = [
    "BrokerConfig",
    "ClientCredentialsConfig",
    "CloudAccountConfig",
    "DeviceCodeConfig",
    "OidcTokenProviderConfig",
    "Pkcs11SignerConfig",
    "PivSignerConfig",
    "PrivateCaSignerConfig",
    "ProfileConfig",
    "SignAlgorithmName",
    "SignerDescriptor",
    "SoftwareKeySignerConfig",
    "cache_key",
    "resolve_config_path",
]

import hashlib
import json
import os
import re
from pathlib import Path
from typing import Annotated, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from idaas_broker.constants import CONFIG_FILE_NAME, DEFAULT_CONFIG_DIR, ENV_CONFIG_PATH
from idaas_broker.exceptions import ConfigurationError
from idaas_broker.utils.file_helpers import load_validated_json

SignAlgorithmName = Literal["RS256", "ES256", "ES384", "ES512"]

_PROFILE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class _DigestMixin:
    """Stable SHA-256 digest over a model's canonical JSON."""

    def digest(self) -> str:
        data = self.model_dump(mode="json")  # type: ignore[attr-defined]
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()


# =============================================================================
# Signer descriptors
# =============================================================================


class _SignerConfigBase(BaseModel):
    """Fields shared by every signer variant.

    Attributes:
        algorithm: JWT algorithm. Inferred from the public key when absent.
        kid: Optional key id placed in the JWT header.
    """

    algorithm: SignAlgorithmName | None = None
    kid: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class SoftwareKeySignerConfig(_SignerConfigBase):
    """PEM private key on disk.

    Attributes:
        key_path: Path to a PEM (PKCS#1, SEC1 or PKCS#8) private key.
        password: Key password. Falls back to IDAAS_BROKER_PKCS8_PASSWORD.
    """

    type: Literal["software_key"]
    key_path: str = Field(min_length=1)
    password: str | None = None


class PivSignerConfig(_SignerConfigBase):
    """Key held in a PIV smartcard slot (YubiKey).

    Attributes:
        slot: PIV slot, e.g. "9a" (authentication) or "9c" (signature).
        pin: Card PIN. Falls back to IDAAS_BROKER_YUBIKEY_PIN.
        serial: Device serial when more than one card is connected.
    """

    type: Literal["piv"]
    slot: str = Field(default="9a", pattern=r"^[0-9a-fA-F]{2}$")
    pin: str | None = None
    serial: int | None = None


class Pkcs11SignerConfig(_SignerConfigBase):
    """Key held in a PKCS#11 token or HSM.

    Attributes:
        module_path: Path to the PKCS#11 shared library.
        token_label: Token label.
        key_label: Private key label.
        pin: User PIN. Falls back to IDAAS_BROKER_PKCS11_PIN.
    """

    type: Literal["pkcs11"]
    module_path: str = Field(min_length=1)
    token_label: str = Field(min_length=1)
    key_label: str = Field(min_length=1)
    pin: str | None = None


_BackendKeyConfig = Annotated[
    SoftwareKeySignerConfig | PivSignerConfig | Pkcs11SignerConfig,
    Field(discriminator="type"),
]


class PrivateCaSignerConfig(_SignerConfigBase):
    """Key whose certificate was issued by a private CA.

    The certificate chain is sent in the JWT "x5c" header so the issuer
    can authenticate the client by its CA.

    Attributes:
        certificate_path: PEM certificate chain, leaf first.
        key: Backend holding the certificate's private key.
    """

    type: Literal["private_ca"]
    certificate_path: str = Field(min_length=1)
    key: _BackendKeyConfig


SignerDescriptor = Annotated[
    SoftwareKeySignerConfig | PivSignerConfig | Pkcs11SignerConfig | PrivateCaSignerConfig,
    Field(discriminator="type"),
]


# =============================================================================
# OIDC token providers
# =============================================================================


class DeviceCodeConfig(BaseModel):
    """Interactive device authorization grant (RFC 8628).

    Attributes:
        issuer: OIDC issuer URL.
        client_id: Client identifier.
        client_secret: Optional confidential-client secret.
        scope: Requested scope. Defaults to "openid".
        show_qr_code: Print the verification URL as a QR code.
        small_qr_code: Use the half-block QR rendering.
        auto_open_url: Open the verification URL in a browser.
    """

    issuer: str = Field(min_length=1, pattern=r"^https?://")
    client_id: str = Field(min_length=1)
    client_secret: str | None = None
    scope: str | None = None
    show_qr_code: bool = False
    small_qr_code: bool = False
    auto_open_url: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")


class ClientCredentialsConfig(BaseModel):
    """Non-interactive client credentials grant.

    Attributes:
        issuer: OIDC issuer URL.
        client_id: Client identifier.
        client_secret: Client secret.
        client_assertion_signer: Signer for RFC 7523 client assertions.
        assertion_jti: Put a random jti claim in each client assertion.
        scope: Requested scope. Defaults to "openid".
    """

    issuer: str = Field(min_length=1, pattern=r"^https?://")
    client_id: str = Field(min_length=1)
    client_secret: str | None = None
    client_assertion_signer: SignerDescriptor | None = None
    assertion_jti: bool = True
    scope: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def exactly_one_client_auth(self) -> Self:
        """The client credentials grant requires client authentication."""
        if (self.client_secret is None) == (self.client_assertion_signer is None):
            raise ValueError("Exactly one of client_secret and client_assertion_signer must be set")
        return self


class OidcTokenProviderConfig(_DigestMixin, BaseModel):
    """Source of an OIDC token.

    Attributes:
        device_code: Device authorization grant settings.
        client_credentials: Client credentials grant settings.
        token_type: Field returned to callers of an oidc_token profile.
    """

    device_code: DeviceCodeConfig | None = None
    client_credentials: ClientCredentialsConfig | None = None
    token_type: Literal["id_token", "access_token"] = "id_token"

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def exactly_one_provider(self) -> Self:
        if (self.device_code is None) == (self.client_credentials is None):
            raise ValueError("Exactly one of device_code and client_credentials must be set")
        return self

    @property
    def issuer(self) -> str:
        provider = self.device_code or self.client_credentials
        assert provider is not None
        return provider.issuer

    @property
    def client_assertion_signer(self) -> SignerDescriptor | None:
        if self.client_credentials is None:
            return None
        return self.client_credentials.client_assertion_signer


class CloudAccountConfig(_DigestMixin, BaseModel):
    """Cloud-account credential exchange.

    Attributes:
        cloud_account_endpoint: Endpoint returning a CloudAccountCredential.
        cloud_account_role_external_id: Role to assume.
        access_token_provider: Provider of the bearer access token.
    """

    cloud_account_endpoint: str = Field(min_length=1, pattern=r"^https?://")
    cloud_account_role_external_id: str = Field(min_length=1)
    access_token_provider: OidcTokenProviderConfig

    model_config = ConfigDict(frozen=True, extra="forbid")


class ProfileConfig(_DigestMixin, BaseModel):
    """A named profile. Exactly one credential kind is configured."""

    oidc_token: OidcTokenProviderConfig | None = None
    cloud_account: CloudAccountConfig | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def exactly_one_kind(self) -> Self:
        if (self.oidc_token is None) == (self.cloud_account is None):
            raise ValueError("Exactly one of oidc_token and cloud_account must be set")
        return self


class BrokerConfig(BaseModel):
    """Top-level configuration file.

    Attributes:
        version: File format version.
        default_profile: Profile used when none is requested.
        profiles: Profiles by name.
    """

    version: Literal["1"] = "1"
    default_profile: str | None = None
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}  # Ignore unknown fields for forward compat

    @classmethod
    def load(cls, config_path: Path) -> BrokerConfig:
        """Load configuration from a JSON file.

        Raises:
            ConfigurationError: If the file is missing or invalid.
        """
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}\n"
                f"Create it or point {ENV_CONFIG_PATH} / --config at an existing file."
            )
        try:
            return load_validated_json(
                config_path,
                cls,
                file_type="config",
                recovery_hint="Fix the configuration file and retry.",
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def resolve_profile(self, name: str | None) -> tuple[str, ProfileConfig]:
        """Pick the profile to use.

        Order: explicit name, then default_profile, then the only profile.

        Returns:
            Tuple of (profile name, profile config).

        Raises:
            ConfigurationError: If no profile can be chosen.
        """
        if not name:
            name = self.default_profile
        if not name:
            if len(self.profiles) != 1:
                raise ConfigurationError(
                    "No profile requested and no default_profile configured "
                    f"({len(self.profiles)} profiles available)"
                )
            name = next(iter(self.profiles))

        if not _PROFILE_NAME.match(name):
            raise ConfigurationError(f"Invalid profile name: {name!r}")

        profile = self.profiles.get(name)
        if profile is None:
            raise ConfigurationError(f"Profile not found: {name}")
        return name, profile


def resolve_config_path(explicit: str | Path | None) -> Path:
    """Config path from --config, else IDAAS_BROKER_CONFIG, else the OS default."""
    if explicit:
        return Path(explicit).expanduser()
    from_env = os.environ.get(ENV_CONFIG_PATH)
    if from_env:
        return Path(from_env).expanduser()
    return Path(DEFAULT_CONFIG_DIR) / CONFIG_FILE_NAME


def cache_key(profile: str, config: _DigestMixin) -> str:
    """Cache key for a profile: "{profile}_{first 32 hex chars of config digest}".

    Changing a profile's configuration changes its key, so stale entries
    from an older configuration are never served.
    """
    return f"{profile}_{config.digest()[:32]}"
