"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CONVERSATION_NOT_FOUND = "E_CONVERSATION_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_CONTENT = "E_INVALID_CONTENT"
    E_SELF_CONVERSATION = "E_SELF_CONVERSATION"

    # Contention (409)
    E_CONFLICT = "E_CONFLICT"

    # Server errors
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_STORE_UNAVAILABLE = "E_STORE_UNAVAILABLE"  # 503
    E_TIMEOUT = "E_TIMEOUT"  # 504
    E_INTERNAL = "E_INTERNAL"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_CONVERSATION_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_CONTENT: 400,
    ApiErrorCode.E_SELF_CONVERSATION: 400,
    ApiErrorCode.E_CONFLICT: 409,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
    ApiErrorCode.E_STORE_UNAVAILABLE: 503,
    ApiErrorCode.E_TIMEOUT: 504,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error. Deterministic, never retried."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class ConflictError(ApiError):
    """Write contention that outlived the retry budget."""

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_CONFLICT,
        message: str = "Conversation is busy, try again",
    ):
        super().__init__(code, message)


class StoreUnavailableError(ApiError):
    """Backing store unreachable. Not retried at this layer."""

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_STORE_UNAVAILABLE,
        message: str = "Service temporarily unavailable",
    ):
        super().__init__(code, message)


class DeadlineExceededError(ApiError):
    """The caller's deadline passed before the transaction committed."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_TIMEOUT, message: str = "Request timed out"
    ):
        super().__init__(code, message)
