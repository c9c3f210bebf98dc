"""API response envelope helpers and exception handlers.

All API responses use a consistent envelope:
- Success: { "data": ... }
- Error: { "error": { "code": "E_...", "message": "...", "request_id": "..." } }
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from murmur.errors import ApiError, ApiErrorCode
from murmur.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Framework-raised HTTP errors (unknown route, wrong method) mapped onto our codes
STATUS_TO_CODE = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    401: ApiErrorCode.E_UNAUTHENTICATED,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    422: ApiErrorCode.E_INVALID_REQUEST,
}


def success_response(data: Any) -> dict[str, Any]:
    """Wrap data in the success envelope."""
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Create an error response envelope.

    Args:
        code: The error code enum value.
        message: Human-readable error message.
        request_id: Request ID for correlation (taken from logging context if None).
    """
    if request_id is None:
        request_id = get_request_id()

    error = {"code": code.value, "message": message}
    if request_id:
        error["request_id"] = request_id

    return {"error": error}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Handle ApiError exceptions and return proper JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message),
    )


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle Starlette HTTPException (routing misses, bad methods)."""
    code = STATUS_TO_CODE.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    message = str(exc.detail) if exc.detail else "An error occurred"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, message),
    )


async def validation_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle request validation errors as 400 E_INVALID_REQUEST.

    Covers bad path UUIDs, out-of-range query params and malformed bodies.
    Only the first error's location is surfaced.
    """
    message = "Invalid request"
    errors = exc.errors() if hasattr(exc, "errors") else []
    if errors:
        loc = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        if loc:
            message = f"Invalid request: {loc}"
    return JSONResponse(
        status_code=400,
        content=error_response(ApiErrorCode.E_INVALID_REQUEST, message),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions and return 500 with E_INTERNAL.

    Logs the exception server-side but never leaks details to client.
    """
    logger.exception("unhandled_exception", error_type=type(exc).__name__)

    return JSONResponse(
        status_code=500,
        content=error_response(ApiErrorCode.E_INTERNAL, "Internal server error"),
    )
