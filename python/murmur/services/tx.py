"""Transaction runner with bounded retry and caller deadlines.

Every mutation that spans Conversation + Message runs through
run_in_transaction(). The unit of work is executed, then committed; on any
exception the session is rolled back so no partial write is observable.

Error classification (DBAPIError from the driver):
- contention (serialization failure, deadlock, lock not available, SQLite
  "database is locked"): retried up to TX_MAX_ATTEMPTS times with
  exponential backoff + jitter, then ConflictError
- statement cancelled by statement_timeout: DeadlineExceededError
- any other OperationalError / invalidated connection: StoreUnavailableError,
  not retried here
- everything else propagates unchanged

The unit of work is re-executed on retry, so it must only close over plain
values (ids, strings), not ORM instances loaded before the rollback.
"""

import random
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Literal, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from murmur.config import get_settings
from murmur.errors import (
    ApiError,
    ConflictError,
    DeadlineExceededError,
    StoreUnavailableError,
)
from murmur.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ErrorKind = Literal["conflict", "timeout", "unavailable", "other"]

# PostgreSQL SQLSTATEs
CONFLICT_SQLSTATES = frozenset(
    {
        "40001",  # serialization_failure
        "40P01",  # deadlock_detected
        "55P03",  # lock_not_available
    }
)
TIMEOUT_SQLSTATES = frozenset({"57014"})  # query_canceled

SQLITE_LOCKED_MESSAGES = ("database is locked", "database table is locked")


@dataclass(frozen=True)
class Deadline:
    """Absolute point on the monotonic clock by which work must finish."""

    expires_at: float

    @classmethod
    def after_ms(cls, ms: int) -> "Deadline":
        return cls(expires_at=time.monotonic() + ms / 1000.0)

    def remaining_s(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


def classify_db_error(exc: DBAPIError) -> ErrorKind:
    """Map a driver error onto the retry taxonomy."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return "conflict"
    if sqlstate in TIMEOUT_SQLSTATES:
        return "timeout"

    message = str(orig).lower()
    if any(m in message for m in SQLITE_LOCKED_MESSAGES):
        return "conflict"

    if exc.connection_invalidated or isinstance(exc, OperationalError):
        return "unavailable"
    return "other"


def backoff_delay(attempt: int, base_ms: int) -> float:
    """Seconds to wait before retry number `attempt` (1-based)."""
    if base_ms <= 0:
        return 0.0
    base = base_ms / 1000.0
    return base * (2 ** (attempt - 1)) + random.uniform(0, base)


def _apply_statement_timeout(db: Session, deadline: Deadline | None) -> None:
    """Bound every statement in the current transaction by the deadline.

    PostgreSQL only; SET LOCAL is scoped to the open transaction and does
    not accept bind parameters.
    """
    if deadline is None:
        return
    if db.get_bind().dialect.name != "postgresql":
        return
    remaining_ms = max(1, int(deadline.remaining_s() * 1000))
    db.execute(text(f"SET LOCAL statement_timeout = {remaining_ms}"))


def run_in_transaction(
    db: Session,
    work: Callable[[], T],
    *,
    operation: str,
    deadline: Deadline | None = None,
    max_attempts: int | None = None,
    backoff_base_ms: int | None = None,
) -> T:
    """Run `work` and commit it atomically, retrying on contention.

    Args:
        db: Database session. Any transaction already open on it is joined.
        work: Unit of work; executed once per attempt.
        operation: Name used in log events.
        deadline: Optional caller deadline.
        max_attempts: Override for TX_MAX_ATTEMPTS.
        backoff_base_ms: Override for TX_BACKOFF_BASE_MS.

    Returns:
        Whatever `work` returns on the committed attempt.

    Raises:
        ConflictError: Contention persisted through every attempt.
        DeadlineExceededError: The deadline passed before commit.
        StoreUnavailableError: The database could not be reached.
        ApiError: Raised by `work` itself (never retried).
    """
    settings = get_settings()
    attempts = max_attempts if max_attempts is not None else settings.tx_max_attempts
    base_ms = backoff_base_ms if backoff_base_ms is not None else settings.tx_backoff_base_ms

    for attempt in range(1, attempts + 1):
        if deadline is not None and deadline.expired:
            db.rollback()
            logger.warning("tx_deadline_exceeded", operation=operation, attempt=attempt)
            raise DeadlineExceededError()

        try:
            _apply_statement_timeout(db, deadline)
            result = work()
            db.flush()

            if deadline is not None and deadline.expired:
                logger.warning("tx_deadline_exceeded", operation=operation, attempt=attempt)
                raise DeadlineExceededError()

            db.commit()
            return result

        except ApiError:
            db.rollback()
            raise

        except DBAPIError as exc:
            db.rollback()
            kind = classify_db_error(exc)

            if kind == "timeout":
                logger.warning("tx_deadline_exceeded", operation=operation, attempt=attempt)
                raise DeadlineExceededError() from exc
            if kind == "unavailable":
                logger.error("store_unavailable", operation=operation, error=str(exc.orig))
                raise StoreUnavailableError() from exc
            if kind != "conflict":
                raise

            if attempt >= attempts:
                logger.warning("tx_conflict_exhausted", operation=operation, attempts=attempts)
                raise ConflictError() from exc

            delay = backoff_delay(attempt, base_ms)
            if deadline is not None and delay >= deadline.remaining_s():
                logger.warning("tx_deadline_exceeded", operation=operation, attempt=attempt)
                raise DeadlineExceededError() from exc

            logger.info(
                "tx_retry",
                operation=operation,
                attempt=attempt,
                delay_ms=round(delay * 1000, 1),
            )
            time.sleep(delay)

        except Exception:
            db.rollback()
            raise

    # attempts < 1 is rejected by Settings; explicit overrides must be >= 1
    raise ValueError("max_attempts must be >= 1")


@contextmanager
def store_errors(operation: str) -> Generator[None, None, None]:
    """Translate connectivity failures during reads into StoreUnavailableError."""
    try:
        yield
    except DBAPIError as exc:
        if classify_db_error(exc) == "unavailable":
            logger.error("store_unavailable", operation=operation, error=str(exc.orig))
            raise StoreUnavailableError() from exc
        raise
