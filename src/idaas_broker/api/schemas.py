"""API response models."""

from __future__ import annotations

__all__ = ["VersionResponse"]

from pydantic import BaseModel


class VersionResponse(BaseModel):
    """Body of GET /version."""

    name: str
    version: str
    startup: int
