"""Pytest configuration and fixtures for Murmur tests.

Test isolation strategy:
- DATABASE_URL selects the database. Unset, the suite runs against a
  temporary SQLite file whose schema is created from the ORM metadata;
  a PostgreSQL URL must already be migrated (alembic upgrade head)
- Tests that use db_session get a savepoint that rolls back
- Tests needing multiple connections use direct_db
- HTTP tests use auth_client with test JWT tokens
"""

import os
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

if not os.environ.get("DATABASE_URL"):
    _sqlite_dir = tempfile.mkdtemp(prefix="murmur-tests-")
    os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_sqlite_dir}/murmur.db"
os.environ.setdefault("MURMUR_ENV", "test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, inspect
from sqlalchemy.orm import Session

from murmur.api.deps import get_db
from murmur.app import add_request_id_middleware, create_app
from murmur.auth.middleware import AuthMiddleware
from murmur.config import clear_settings_cache
from murmur.db.engine import create_db_engine
from murmur.db.models import Base
from murmur.services.presence import InMemoryPresence
from murmur.services.profiles import StaticProfileDirectory
from tests.helpers import create_test_user_id
from tests.support.test_verifier import MockJwtVerifier
from tests.utils.db import DirectSessionManager, TestDatabaseManager


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    """Create a database engine for the test session."""
    engine = create_db_engine(os.environ["DATABASE_URL"])

    if engine.dialect.name == "sqlite":
        Base.metadata.create_all(engine)
    elif not inspect(engine).has_table("conversations"):
        pytest.fail(
            "Database schema not found. Run migrations first:\n"
            "  cd migrations && alembic upgrade head"
        )

    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    """Provide a database session with savepoint isolation.

    Commits made by the code under test release a savepoint; everything is
    rolled back after the test. Do not use for multi-connection tests.
    """
    with TestDatabaseManager(engine) as session:
        yield session


@pytest.fixture
def direct_db(engine: Engine) -> Generator[DirectSessionManager, None, None]:
    """Provide direct database access without savepoint isolation.

    Use for tests that require multiple independent connections that must
    see each other's committed data (e.g., racing first contact).
    """
    manager = DirectSessionManager(engine)
    yield manager
    manager.cleanup()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client without authentication."""
    app = create_app(skip_auth_middleware=True)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def presence() -> InMemoryPresence:
    return InMemoryPresence()


@pytest.fixture
def profiles() -> StaticProfileDirectory:
    return StaticProfileDirectory()


@pytest.fixture
def authenticated_app(db_session: Session, presence: InMemoryPresence):
    """FastAPI app with auth + request-id middleware and the test session.

    Routes share db_session, so HTTP tests roll back like service tests.
    """
    app = create_app(skip_auth_middleware=True)
    app.add_middleware(AuthMiddleware, verifier=MockJwtVerifier())
    add_request_id_middleware(app, log_requests=False)

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.presence = presence
    return app


@pytest.fixture
def auth_client(authenticated_app) -> Generator[TestClient, None, None]:
    """Provide a test client with auth middleware.

    Use auth_headers() to generate valid tokens for requests.
    """
    with TestClient(authenticated_app) as client:
        yield client


@pytest.fixture
def alice() -> str:
    return create_test_user_id("alice")


@pytest.fixture
def bob() -> str:
    return create_test_user_id("bob")


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
