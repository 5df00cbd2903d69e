"""Cloud-account credential and vendor STS token models.

The cloud-account endpoint speaks camelCase JSON; models keep snake_case
attributes with aliases and always serialize by alias so cached content
round-trips unchanged.
"""

from __future__ import annotations

__all__ = [
    "AlibabaCloudStsPayload",
    "AlibabaStsToken",
    "CloudAccountCredential",
    "CloudAccountRoleAccessCredential",
]

import json
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from idaas_broker.exceptions import ConversionError

_WIRE = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class AlibabaCloudStsPayload(BaseModel):
    """Alibaba Cloud STS token nested in a cloud-account credential."""

    access_key_id: str = Field(alias="accessKeyId")
    access_key_secret: str = Field(alias="accessKeySecret")
    security_token: str = Field(alias="securityToken")
    expiration: str = Field(alias="expiration")

    model_config = _WIRE


class CloudAccountRoleAccessCredential(BaseModel):
    """Access credential of an assumed role.

    Exactly one vendor payload is populated, selected by the account's
    vendor type.
    """

    expires_at: int = Field(alias="accessCredentialExpiresAt")
    alibaba_cloud_sts_token: AlibabaCloudStsPayload | None = Field(default=None, alias="alibabaCloudStsToken")

    model_config = _WIRE


class CloudAccountCredential(BaseModel):
    """Vendor-neutral credential returned by the cloud-account endpoint."""

    account_id: str = Field(default="", alias="cloudAccountId")
    role_id: str = Field(default="", alias="cloudAccountRoleId")
    role_name: str = Field(default="", alias="cloudAccountRoleName")
    role_external_id: str = Field(default="", alias="cloudAccountRoleExternalId")
    vendor_type: str = Field(default="", alias="cloudAccountVendorType")
    access_credential: CloudAccountRoleAccessCredential | None = Field(
        default=None, alias="cloudAccountRoleAccessCredential"
    )

    model_config = _WIRE

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @property
    def expires_at(self) -> int | None:
        """Unix expiry of the access credential, None when absent."""
        if self.access_credential is None:
            return None
        return self.access_credential.expires_at


@dataclass(frozen=True)
class AlibabaStsToken:
    """Alibaba Cloud STS credential in its native form."""

    access_key_id: str
    access_key_secret: str
    security_token: str
    expiration: str

    def to_aliyuncli(self) -> dict[str, str]:
        """Format read by `aliyun configure` (mode StsToken)."""
        return {
            "mode": "StsToken",
            "access_key_id": self.access_key_id,
            "access_key_secret": self.access_key_secret,
            "sts_token": self.security_token,
        }

    def to_ossutilv2(self) -> dict[str, str]:
        """Format read by ossutil v2's process credential provider."""
        return {
            "AccessKeyId": self.access_key_id,
            "AccessKeySecret": self.access_key_secret,
            "SecurityToken": self.security_token,
            "Expiration": self.expiration,
        }

    def to_credentials_uri(self) -> dict[str, str]:
        """Body served to SDKs using the credentials URI provider."""
        return {"Code": "Success", **self.to_ossutilv2()}

    def render(self, output_format: str) -> str:
        """Serialize in a named format (aliyuncli, ossutilv2 or raw).

        Raises:
            ConversionError: If the format is unknown.
        """
        match output_format:
            case "aliyuncli" | "":
                data = self.to_aliyuncli()
            case "ossutilv2":
                data = self.to_ossutilv2()
            case "raw":
                data = {
                    "accessKeyId": self.access_key_id,
                    "accessKeySecret": self.access_key_secret,
                    "securityToken": self.security_token,
                    "expiration": self.expiration,
                }
            case _:
                raise ConversionError(f"Unknown STS output format: {output_format}")
        return json.dumps(data)
