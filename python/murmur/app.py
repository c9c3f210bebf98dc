"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, auth middleware, request-id middleware, and routes.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including auth failures) get X-Request-ID

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. AuthMiddleware (verifies auth, sets viewer)
3. Route handler
4. AuthMiddleware (returns response)
5. RequestIDMiddleware (logs, sets response header)

Collaborator Lifecycle:
- create_app installs in-process collaborators on app.state (no presence
  backend, id-only profiles) so the app works without any external service
- lifespan swaps in Redis presence and the HTTP profile directory when
  REDIS_URL / USER_DIRECTORY_URL are set, and closes them at shutdown
"""

import json
from contextlib import asynccontextmanager

import httpx
import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from murmur.api.routes import create_api_router
from murmur.auth.middleware import AuthMiddleware
from murmur.auth.verifier import JwksVerifier, TokenVerifier
from murmur.config import get_settings
from murmur.errors import ApiError, ApiErrorCode
from murmur.logging import configure_logging, get_logger
from murmur.middleware.request_id import RequestIDMiddleware
from murmur.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from murmur.services.presence import InMemoryPresence, RedisPresence
from murmur.services.profiles import HttpProfileDirectory, StaticProfileDirectory

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)


def create_token_verifier() -> TokenVerifier:
    """Create the JWKS token verifier from settings.

    Raises:
        ApiError(E_AUTH_UNAVAILABLE): Auth settings are not configured.
    """
    settings = get_settings()
    if not settings.auth_configured:
        raise ApiError(
            ApiErrorCode.E_AUTH_UNAVAILABLE,
            "AUTH_JWKS_URL, AUTH_ISSUER and AUTH_AUDIENCES must be set",
        )

    return JwksVerifier(
        jwks_url=settings.auth_jwks_url,  # type: ignore
        issuer=settings.normalized_issuer,  # type: ignore
        audiences=settings.audience_list,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the presence and profile collaborators that are configured."""
    settings = get_settings()

    redis_client = None
    if settings.redis_url:
        try:
            redis_client = redis.Redis.from_url(
                settings.redis_url, decode_responses=True, socket_timeout=1
            )
            redis_client.ping()
            app.state.presence = RedisPresence(redis_client, key=settings.presence_key)
            logger.info("redis_presence_initialized", key=settings.presence_key)
        except redis.RedisError as e:
            logger.warning("redis_client_init_failed", error=str(e))
            if redis_client is not None:
                redis_client.close()
            redis_client = None

    http_client = None
    if settings.user_directory_url:
        http_client = httpx.Client(
            timeout=httpx.Timeout(settings.user_directory_timeout_s),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
        )
        app.state.profiles = HttpProfileDirectory(http_client, settings.user_directory_url)
        logger.info("profile_directory_initialized", base_url=settings.user_directory_url)

    yield

    if http_client is not None:
        http_client.close()
    if redis_client is not None:
        try:
            redis_client.close()
        except redis.RedisError as e:
            logger.warning("redis_client_close_failed", error=str(e))
    logger.info("collaborators_closed")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Murmur API",
        description="Direct messaging between pairs of users",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.presence = InMemoryPresence()
    app.state.profiles = StaticProfileDirectory()

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Handle JSON decode errors from malformed JSON bodies
    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Catch JSON decode errors before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    # Add auth middleware (runs on all requests except public paths)
    if not skip_auth_middleware:
        verifier = token_verifier or create_token_verifier()
        app.add_middleware(AuthMiddleware, verifier=verifier)
        logger.info("auth_middleware_enabled", env=settings.murmur_env.value)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    Call AFTER all other middleware is added, so it runs FIRST.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
