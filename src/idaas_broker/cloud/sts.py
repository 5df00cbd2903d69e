"""Vendor STS conversion and the cloud_token expiry policy."""

from __future__ import annotations

__all__ = ["VendorStsToken", "cloud_token_policy", "convert_to_vendor_sts"]

from pydantic import ValidationError

from idaas_broker.cache.policy import CLOUD_TOKEN_THRESHOLDS, ExpiryPolicy
from idaas_broker.cache.store import CacheEntry
from idaas_broker.cloud.models import AlibabaStsToken, CloudAccountCredential
from idaas_broker.exceptions import ConversionError

# One member per supported vendor
VendorStsToken = AlibabaStsToken


def _cloud_token_expires_at(entry: CacheEntry) -> float | None:
    try:
        credential = CloudAccountCredential.model_validate_json(entry.content)
    except ValidationError:
        return None
    return credential.expires_at


cloud_token_policy = ExpiryPolicy(CLOUD_TOKEN_THRESHOLDS, _cloud_token_expires_at)


def convert_to_vendor_sts(credential: CloudAccountCredential) -> VendorStsToken:
    """Map a cloud-account credential to its vendor's native STS token.

    Raises:
        ConversionError: If the credential has no access credential or its
            vendor payload has no mapping.
    """
    access = credential.access_credential
    if access is None:
        raise ConversionError(
            f"Cloud account credential for role {credential.role_external_id or '?'} has no access credential"
        )

    payload = access.alibaba_cloud_sts_token
    if payload is not None:
        return AlibabaStsToken(
            access_key_id=payload.access_key_id,
            access_key_secret=payload.access_key_secret,
            security_token=payload.security_token,
            expiration=payload.expiration,
        )

    raise ConversionError(f"Unsupported cloud vendor type: {credential.vendor_type or 'unknown'}")
