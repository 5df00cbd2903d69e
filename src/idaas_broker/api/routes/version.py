"""Version endpoint.

Routes mounted at: /version
"""

from __future__ import annotations

__all__ = ["router"]

from fastapi import APIRouter

from idaas_broker import __version__
from idaas_broker.api.deps import StartupDep
from idaas_broker.api.schemas import VersionResponse
from idaas_broker.constants import APP_NAME

router = APIRouter()


@router.get("/version", response_model=VersionResponse)
async def get_version(startup_ms: StartupDep) -> VersionResponse:
    """Broker name, version and process start time (Unix ms)."""
    return VersionResponse(name=APP_NAME, version=__version__, startup=startup_ms)
