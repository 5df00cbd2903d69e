"""Cloud STS token endpoint for SDK credentials-URI providers.

Routes mounted at: /cloud_token

Query parameters:
    profile: Profile name (default profile when empty).
    force-new: "true" bypasses every cache layer.
    force-new-cloud-token: "true" bypasses only the cloud token cache.
"""

from __future__ import annotations

__all__ = ["router"]

from typing import Annotated

from fastapi import APIRouter, Query

from idaas_broker.api.deps import OrchestratorDep
from idaas_broker.api.errors import APIError, ErrorCode
from idaas_broker.exceptions import BrokerError, ConversionError, NotCloudProfileError
from idaas_broker.orchestrator import FetchOptions
from idaas_broker.telemetry.system_logger import get_system_logger

logger = get_system_logger()

router = APIRouter()


# Sync handler: FastAPI runs it in the threadpool, so a slow upstream or an
# interactive device flow for one profile does not block other requests.
@router.get("/cloud_token")
def get_cloud_token(
    orchestrator: OrchestratorDep,
    profile: str = "",
    force_new: Annotated[str, Query(alias="force-new")] = "",
    force_new_cloud_token: Annotated[str, Query(alias="force-new-cloud-token")] = "",
) -> dict[str, str]:
    """Fetch the profile's cloud credential in credentials-URI form."""
    options = FetchOptions(
        force_new=force_new == "true",
        force_new_cloud_credential=force_new_cloud_token == "true",
    )
    try:
        sts = orchestrator.fetch_vendor_sts(profile or None, options)
    except NotCloudProfileError as e:
        raise APIError(500, ErrorCode.BAD_REQUEST, "Unknown cloud sts token.") from e
    except ConversionError as e:
        raise APIError(501, ErrorCode.NOT_IMPLEMENTED, str(e)) from e
    except BrokerError as e:
        logger.error(
            {
                "event": "cloud_token_fetch_failed",
                "message": f"Fetch cloud STS token failed for profile {profile or 'default'}: {e}",
                "component": "api",
                "error_type": type(e).__name__,
            }
        )
        raise APIError(500, ErrorCode.INTERNAL_ERROR, "Fetch cloud sts token failed.") from e
    return sts.to_credentials_uri()
