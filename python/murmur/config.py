"""Application settings loaded from environment variables.

Environment Configuration:
    MURMUR_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: Database connection string (required)

Auth Configuration (required in staging/prod):
    AUTH_JWKS_URL: Full URL to the identity provider's JWKS endpoint
    AUTH_ISSUER: Expected JWT issuer (trailing slash stripped)
    AUTH_AUDIENCES: Comma-separated list of allowed audiences

Collaborators:
    REDIS_URL: Redis connection string for the presence set (optional)
    USER_DIRECTORY_URL: Base URL of the profile service (optional)

Messaging limits and transaction tuning are documented on the fields below.
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Validation rules:
    - DATABASE_URL is always required
    - AUTH_JWKS_URL, AUTH_ISSUER, AUTH_AUDIENCES are required in staging and prod
    - Numeric limits must be positive (backoff may be zero)
    """

    murmur_env: Environment = Field(default=Environment.LOCAL, alias="MURMUR_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]

    # Auth settings
    auth_jwks_url: str | None = Field(default=None, alias="AUTH_JWKS_URL")
    auth_issuer: str | None = Field(default=None, alias="AUTH_ISSUER")
    auth_audiences: str | None = Field(default=None, alias="AUTH_AUDIENCES")

    # Presence collaborator
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    presence_key: str = Field(default="presence:online", alias="PRESENCE_KEY")

    # Profile collaborator
    user_directory_url: str | None = Field(default=None, alias="USER_DIRECTORY_URL")
    user_directory_timeout_s: float = Field(default=2.0, alias="USER_DIRECTORY_TIMEOUT_S")

    # Message content limits
    message_max_length: int = Field(default=5000, alias="MESSAGE_MAX_LENGTH")
    message_preview_length: int = Field(default=100, alias="MESSAGE_PREVIEW_LENGTH")

    # Transaction retry + deadline
    tx_max_attempts: int = Field(default=3, alias="TX_MAX_ATTEMPTS")
    tx_backoff_base_ms: int = Field(default=20, alias="TX_BACKOFF_BASE_MS")
    tx_timeout_ms: int = Field(default=5000, alias="TX_TIMEOUT_MS")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure required settings are set for the current environment."""
        if self.murmur_env in (Environment.STAGING, Environment.PROD):
            missing_auth = []
            if not self.auth_jwks_url:
                missing_auth.append("AUTH_JWKS_URL")
            if not self.auth_issuer:
                missing_auth.append("AUTH_ISSUER")
            if not self.auth_audiences:
                missing_auth.append("AUTH_AUDIENCES")

            if missing_auth:
                raise ValueError(
                    f"Missing required auth settings for MURMUR_ENV={self.murmur_env.value}: "
                    f"{', '.join(missing_auth)}"
                )

        for alias, value in (
            ("MESSAGE_MAX_LENGTH", self.message_max_length),
            ("MESSAGE_PREVIEW_LENGTH", self.message_preview_length),
            ("TX_MAX_ATTEMPTS", self.tx_max_attempts),
            ("TX_TIMEOUT_MS", self.tx_timeout_ms),
        ):
            if value < 1:
                raise ValueError(f"{alias} must be >= 1")

        if self.tx_backoff_base_ms < 0:
            raise ValueError("TX_BACKOFF_BASE_MS must be >= 0")

        return self

    @property
    def auth_configured(self) -> bool:
        """Whether a JWKS verifier can be built from these settings."""
        return bool(self.auth_jwks_url and self.auth_issuer and self.auth_audiences)

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.auth_audiences:
            return [a.strip() for a in self.auth_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.auth_issuer:
            return self.auth_issuer.rstrip("/")
        return None


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
