"""X-Request-ID middleware for request correlation and access logging.

Must be added LAST so it runs FIRST (FastAPI middleware runs in reverse
order). Every other layer, auth included, then sees request.state.request_id
and every error envelope, auth failures included, carries it.
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from murmur.logging import clear_request_context, get_logger, set_request_context

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

# Alphanumeric plus dots, hyphens and underscores. UUIDs match too.
VALID_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

logger = get_logger(__name__)


def resolve_request_id(incoming: str | None) -> str:
    """Return the caller's request ID if usable, else a fresh UUID4.

    Usable means at most 128 bytes and matching the safe character set.
    UUIDs are lowercased; anything else is kept as sent.
    """
    if (
        incoming
        and len(incoming.encode("utf-8")) <= MAX_REQUEST_ID_LENGTH
        and VALID_REQUEST_ID_PATTERN.match(incoming)
    ):
        return incoming.lower() if UUID_PATTERN.match(incoming) else incoming
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware for X-Request-ID handling and access logging.

    Args:
        app: The ASGI application.
        log_requests: If True, emit one request_completed entry per request.
    """

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.monotonic()

        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_context(request_id, path=request.url.path, method=request.method)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

            if self.log_requests:
                viewer = getattr(request.state, "viewer", None)
                logger.info(
                    "request_completed",
                    status_code=response.status_code,
                    user_id=viewer.user_id if viewer else None,
                    duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                )

            return response

        except Exception:
            # unhandled_exception_handler turns this into the 500 envelope
            logger.exception("request_failed")
            raise

        finally:
            clear_request_context()
