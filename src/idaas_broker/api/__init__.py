"""Local HTTP serving endpoint."""

from __future__ import annotations

__all__ = ["create_app"]

from idaas_broker.api.server import create_app
