"""Structured logging for Murmur, built on structlog.

Every entry is one JSON object. Request-scoped fields are held in
ContextVars and merged into each event:

- request_id: correlation id from RequestIDMiddleware
- user_id: the authenticated caller (opaque sub)
- path, method: raw request path (no query string) and HTTP method
- conversation_id: the conversation being operated on, bound by the
  messaging service once the route has resolved it

Usage:
    from murmur.logging import bind_conversation, get_logger

    logger = get_logger(__name__)
    bind_conversation(conversation_id)
    logger.info("message_sent", seq=seq)
"""

import logging
import sys
from contextvars import ContextVar
from uuid import UUID

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
path_var: ContextVar[str | None] = ContextVar("path", default=None)
method_var: ContextVar[str | None] = ContextVar("method", default=None)
conversation_id_var: ContextVar[str | None] = ContextVar("conversation_id", default=None)

_CONTEXT_VARS: tuple[tuple[str, ContextVar[str | None]], ...] = (
    ("request_id", request_id_var),
    ("user_id", user_id_var),
    ("path", path_var),
    ("method", method_var),
    ("conversation_id", conversation_id_var),
)

# Chatty third-party loggers; warnings and above still get through
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "redis")


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Merge bound request context into the event.

    Fields passed explicitly at the call site win over bound values.
    """
    for key, var in _CONTEXT_VARS:
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging(level: int = logging.INFO) -> None:
    """Route structlog and stdlib logging through one JSON renderer on stdout."""
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdlib records (uvicorn, alembic, auth failures) share the same pipeline
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_context(
    request_id: str | None,
    user_id: str | None = None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind request-level fields. None leaves an optional field untouched."""
    request_id_var.set(request_id)
    if user_id is not None:
        user_id_var.set(user_id)
    if path is not None:
        path_var.set(path)
    if method is not None:
        method_var.set(method)


def bind_conversation(conversation_id: UUID | str | None) -> None:
    """Tag subsequent log entries in this context with a conversation id."""
    conversation_id_var.set(str(conversation_id) if conversation_id is not None else None)


def clear_request_context() -> None:
    for _, var in _CONTEXT_VARS:
        var.set(None)


def get_request_id() -> str | None:
    return request_id_var.get()
