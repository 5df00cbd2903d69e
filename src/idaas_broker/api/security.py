"""SSRF guard for the local serving endpoint.

Processes on the host (or a misdirected server-side request) must present
a shared secret before any route runs:

- Header X-Aliyun-Parameters-Secrets-Token, or
- Query parameter __ssrf_token

Absent token: 401. Wrong token: 403. The comparison is constant-time.
"""

from __future__ import annotations

__all__ = ["SsrfGuardMiddleware", "generate_token", "validate_token"]

import hmac
import secrets

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from idaas_broker.api.errors import ErrorCode, error_response
from idaas_broker.constants import SSRF_TOKEN_HEADER, SSRF_TOKEN_QUERY_PARAM
from idaas_broker.telemetry.system_logger import get_system_logger

logger = get_system_logger()


def generate_token() -> str:
    """Generate a random SSRF token (64 hex characters)."""
    return secrets.token_hex(32)


def validate_token(provided: str, expected: str) -> bool:
    """Compare tokens in constant time."""
    return hmac.compare_digest(provided.encode(), expected.encode())


class SsrfGuardMiddleware(BaseHTTPMiddleware):
    """Rejects requests that do not carry the configured SSRF token."""

    def __init__(self, app: ASGIApp, token: str) -> None:
        """Initialize middleware.

        Args:
            app: ASGI application.
            token: Expected SSRF token (non-empty).
        """
        super().__init__(app)
        self.token = token

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        provided = request.headers.get(SSRF_TOKEN_HEADER) or request.query_params.get(SSRF_TOKEN_QUERY_PARAM)
        if not provided:
            logger.warning(
                {
                    "event": "ssrf_token_missing",
                    "message": f"Rejected request without SSRF token: {request.method} {request.url.path}",
                    "component": "api_security",
                    "details": {"path": request.url.path},
                }
            )
            return error_response(
                401,
                ErrorCode.REQUEST_DENIED,
                f"{SSRF_TOKEN_HEADER} header or {SSRF_TOKEN_QUERY_PARAM} parameter is required",
            )
        if not validate_token(provided, self.token):
            logger.warning(
                {
                    "event": "ssrf_token_invalid",
                    "message": f"Rejected request with invalid SSRF token: {request.method} {request.url.path}",
                    "component": "api_security",
                    "details": {"path": request.url.path},
                }
            )
            return error_response(403, ErrorCode.REQUEST_DENIED, "Invalid SSRF token")

        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store"
        return response
