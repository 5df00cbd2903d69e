"""Structured API error handling.

Every non-2xx response has the body:

    {"error": "<code>", "message": "<human readable text>"}
"""

from __future__ import annotations

__all__ = [
    "APIError",
    "ErrorCode",
    "api_error_handler",
    "error_response",
    "http_exception_handler",
]

from enum import Enum

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class ErrorCode(str, Enum):
    """API error codes for programmatic handling."""

    REQUEST_DENIED = "request_denied"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    INTERNAL_ERROR = "internal_error"
    NOT_IMPLEMENTED = "not_implemented"


class APIError(HTTPException):
    """HTTPException carrying an ErrorCode.

    Attributes:
        code: Error code from ErrorCode.
        error_message: Human-readable error message.
    """

    def __init__(self, status_code: int, code: ErrorCode, message: str) -> None:
        self.code = code
        self.error_message = message
        super().__init__(status_code=status_code, detail={"error": code.value, "message": message})


def error_response(status_code: int, code: ErrorCode, message: str) -> JSONResponse:
    """Build an error JSONResponse outside of exception handling (middleware)."""
    return JSONResponse(status_code=status_code, content={"error": code.value, "message": message})


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.error_message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap plain HTTPExceptions (routing 404/405) in the error body."""
    if exc.status_code == 404:
        return error_response(404, ErrorCode.NOT_FOUND, "Resource not found.")
    code = ErrorCode.BAD_REQUEST if 400 <= exc.status_code < 500 else ErrorCode.INTERNAL_ERROR
    return error_response(exc.status_code, code, str(exc.detail) if exc.detail else f"HTTP {exc.status_code}")
