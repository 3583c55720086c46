"""Configuration management for tasksync."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend selection
    backend: Literal["pocketbase", "sqlite"] = Field(
        default="pocketbase", description="Remote collection service implementation to use"
    )

    # PocketBase Configuration
    pocketbase_url: str = Field(default="http://127.0.0.1:8090", description="PocketBase server URL")
    pocketbase_admin_email: str | None = Field(default=None, description="PocketBase admin email for schema sync")
    pocketbase_admin_password: str | None = Field(
        default=None, description="PocketBase admin password for schema sync"
    )
    tasks_collection: str = Field(default="tasks", description="Collection holding task records")
    users_collection: str = Field(default="users", description="Auth collection used to sign users in")

    # Embedded backend
    sqlite_db_path: str = Field(default="./data/tasksync.db", description="SQLite file for the embedded backend")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Remote requests
    request_timeout_seconds: float = Field(default=30.0, description="Timeout for remote collection requests")

    # Change channel recovery
    resubscribe_max_attempts: int = Field(
        default=5, description="Resubscribe attempts after the change channel drops"
    )
    resubscribe_base_delay_seconds: float = Field(
        default=0.5, description="Base delay for exponential backoff between resubscribe attempts"
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # HTTP Status Codes
    HTTP_UNAUTHORIZED: int = 401
    HTTP_FORBIDDEN: int = 403
    HTTP_NOT_FOUND: int = 404

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 200  # PocketBase caps perPage at 1000

    # Change channel
    CHANNEL_QUEUE_MAXSIZE: int = 1000  # Max undelivered events per subscription

    # PocketBase record ids
    RECORD_ID_LENGTH: int = 15


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
