"""FastAPI dependencies for route handlers.

Database sessions, the presence and profile collaborators held on app state,
and the per-request transaction deadline.
"""

from fastapi import Header, Request

from murmur.config import get_settings
from murmur.db.session import get_db
from murmur.errors import ApiErrorCode, InvalidRequestError
from murmur.services.presence import PresenceProvider
from murmur.services.profiles import ProfileDirectory
from murmur.services.tx import Deadline

__all__ = ["get_db", "get_deadline", "get_presence", "get_profiles"]

REQUEST_TIMEOUT_HEADER = "X-Request-Timeout-Ms"


def get_presence(request: Request) -> PresenceProvider:
    return request.app.state.presence


def get_profiles(request: Request) -> ProfileDirectory:
    return request.app.state.profiles


def get_deadline(
    timeout_ms: int | None = Header(default=None, alias=REQUEST_TIMEOUT_HEADER),
) -> Deadline:
    """Build the deadline a mutating request must finish by.

    The caller may shorten the budget via X-Request-Timeout-Ms but never
    extend it past TX_TIMEOUT_MS.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): Header is present but < 1.
    """
    ceiling = get_settings().tx_timeout_ms
    if timeout_ms is None:
        return Deadline.after_ms(ceiling)
    if timeout_ms < 1:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, f"{REQUEST_TIMEOUT_HEADER} must be >= 1"
        )
    return Deadline.after_ms(min(timeout_ms, ceiling))
