"""Application settings using Pydantic Settings for configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Mailsync"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Google OAuth / Gmail API
    google_client_id: str = ""
    google_client_secret: SecretStr = Field(default=SecretStr(""))
    google_token_url: str = "https://oauth2.googleapis.com/token"
    gmail_api_base_url: str = "https://gmail.googleapis.com/gmail/v1/users/me"
    gmail_http_timeout_seconds: float = 30.0

    # Storage
    storage_backend: Literal["sqlite", "postgres"] = "sqlite"
    sqlite_db_path: str = "/app/data/mailsync.db"

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: SecretStr = Field(default=SecretStr("postgres"))
    postgres_db: str = "mailsync"

    # Sync behaviour
    sync_page_size: int = 100
    sync_max_messages_per_run: int = 2000
    sync_fetch_batch_size: int = 10
    sync_max_workers: int = 4
    sync_run_timeout_seconds: float = 300.0
    sync_history_enabled: bool = True
    sync_poll_minutes: int = 5
    max_body_chars: int = 50_000

    # Provider retry policy
    token_refresh_window_seconds: int = 600
    provider_max_retries: int = 5
    provider_backoff_base_seconds: float = 1.0
    provider_backoff_max_seconds: float = 32.0

    # Triggers and notifications
    gmail_webhook_token: SecretStr | None = None
    notification_webhook_url: str | None = None

    @computed_field
    @property
    def postgres_dsn(self) -> str:
        """Construct PostgreSQL connection string."""
        password = self.postgres_password.get_secret_value()
        return f"postgresql://{self.postgres_user}:{password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
