"""FastAPI application for the local serving endpoint."""

from __future__ import annotations

__all__ = ["create_app"]

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from idaas_broker import __version__
from idaas_broker.api.errors import APIError, api_error_handler, http_exception_handler
from idaas_broker.api.routes import cloud_token, version
from idaas_broker.api.security import SsrfGuardMiddleware
from idaas_broker.orchestrator import CredentialOrchestrator


def create_app(orchestrator: CredentialOrchestrator, startup_ms: int, ssrf_token: str | None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        orchestrator: Serves every credential request.
        startup_ms: Process start time reported by /version.
        ssrf_token: Shared secret required on every request. None disables
            the guard (only with --unsafe-disable-ssrf).

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="idaas-broker",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.orchestrator = orchestrator
    app.state.startup_ms = startup_ms

    if ssrf_token:
        app.add_middleware(SsrfGuardMiddleware, token=ssrf_token)

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.include_router(version.router, tags=["version"])
    app.include_router(cloud_token.router, tags=["cloud_token"])
    return app
