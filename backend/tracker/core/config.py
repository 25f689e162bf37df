"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "your-secret-key-change-in-production"
DEFAULT_SMTP_USERNAME = "awareness@localhost"
DEFAULT_SMTP_PASSWORD = "change-me"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Awareness Tracker"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # API
    api_v1_prefix: str = "/api/v1"

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "tracker"
    postgres_password: str = "tracker_dev"
    postgres_db: str = "tracker"
    database_url: Optional[str] = None  # Full URL override (e.g. sqlite+aiosqlite:///...)

    # JWT Authentication
    jwt_secret_key: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440  # 24 hours

    # Security
    frontend_url: str = "http://localhost:3000"
    login_rate_limit: str = "5/15minutes"
    admin_email: str = "admin@tracker.local"
    admin_password: str = ""  # Seeded operator password; "admin123" in development when empty
    email_encryption_key: str = ""  # Fernet key for stored SMTP password

    # Default outbound SMTP transport (used until settings are saved via the API)
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = DEFAULT_SMTP_USERNAME
    smtp_password: str = DEFAULT_SMTP_PASSWORD
    smtp_secure: bool = False  # True = implicit TLS (465), False = STARTTLS
    mail_from_email: str = ""
    mail_from_name: str = "Security Team"

    # Dispatch pipeline
    smtp_connect_timeout: float = 5.0
    smtp_probe_timeout: float = 15.0
    smtp_send_timeout: float = 30.0
    dispatch_concurrency: int = 10
    link_placeholder: str = "{{LINK_TEXT}}"

    # Click store
    pending_insert_concurrency: int = 5

    @property
    def postgres_url(self) -> str:
        """Build PostgreSQL async connection URL."""
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    @property
    def sqlalchemy_url(self) -> str:
        """URL handed to the async engine."""
        return self.database_url or self.postgres_url

    def validate_production_settings(self) -> None:
        """
        Validate critical settings for production deployment.
        Raises ValueError if any critical settings are using default/insecure values.
        """
        if self.environment == "production":
            errors = []

            if self.jwt_secret_key == DEFAULT_JWT_SECRET:
                errors.append("JWT_SECRET_KEY must be changed from default value in production")

            if len(self.jwt_secret_key) < 32:
                errors.append("JWT_SECRET_KEY must be at least 32 characters long")

            if not self.database_url and (
                not self.postgres_password or self.postgres_password == "tracker_dev"
            ):
                errors.append("POSTGRES_PASSWORD must be set to a secure value in production")

            if not self.email_encryption_key:
                errors.append("EMAIL_ENCRYPTION_KEY must be set so stored SMTP passwords survive restarts")

            if (
                self.smtp_username == DEFAULT_SMTP_USERNAME
                and self.smtp_password == DEFAULT_SMTP_PASSWORD
            ):
                errors.append("SMTP_USERNAME / SMTP_PASSWORD are still the built-in defaults")

            if errors:
                raise ValueError(
                    "Production configuration validation failed:\n" +
                    "\n".join(f"  - {error}" for error in errors)
                )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
