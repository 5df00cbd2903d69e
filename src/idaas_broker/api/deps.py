"""Shared dependencies for API routes.

Usage with Annotated:
    from idaas_broker.api.deps import OrchestratorDep

    @router.get("/cloud_token")
    def cloud_token(orchestrator: OrchestratorDep) -> dict[str, str]:
        ...
"""

from __future__ import annotations

__all__ = ["OrchestratorDep", "StartupDep", "get_orchestrator", "get_startup_ms"]

from typing import Annotated

from fastapi import Depends, Request

from idaas_broker.orchestrator import CredentialOrchestrator


def get_orchestrator(request: Request) -> CredentialOrchestrator:
    """Get the CredentialOrchestrator from app.state."""
    orchestrator: CredentialOrchestrator = request.app.state.orchestrator
    return orchestrator


def get_startup_ms(request: Request) -> int:
    """Get the process start time (Unix ms) from app.state."""
    startup_ms: int = request.app.state.startup_ms
    return startup_ms


OrchestratorDep = Annotated[CredentialOrchestrator, Depends(get_orchestrator)]
StartupDep = Annotated[int, Depends(get_startup_ms)]
