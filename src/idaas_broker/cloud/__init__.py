"""Cloud-account credentials and vendor STS tokens."""

from __future__ import annotations

__all__ = [
    "AlibabaStsToken",
    "CloudAccountClient",
    "CloudAccountCredential",
    "VendorStsToken",
    "cloud_token_policy",
    "convert_to_vendor_sts",
]

from idaas_broker.cloud.account import CloudAccountClient
from idaas_broker.cloud.models import AlibabaStsToken, CloudAccountCredential
from idaas_broker.cloud.sts import VendorStsToken, cloud_token_policy, convert_to_vendor_sts
