"""
RFP Portal - Configuration Management

Central configuration using Pydantic settings.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CONSUMER_DOMAINS = (
    "gmail.com,yahoo.com,hotmail.com,outlook.com,aol.com,"
    "icloud.com,protonmail.com,tutanota.com,yandex.com,"
    "mail.ru,qq.com,163.com,sina.com"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_env: str = Field(default="development", description="API environment")
    log_level: str = Field(default="INFO", description="Root log level")
    cors_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        description="CORS origins (comma-separated)"
    )
    app_base_url: str = Field(
        default="http://localhost:5173",
        description="Public URL of the web client, used in invitation links"
    )

    # Database Configuration
    database_url: str = Field(
        default="postgresql+asyncpg://localhost/rfp_portal",
        description="Database connection URL"
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL queries for debugging"
    )
    database_pool_size: int = Field(
        default=5,
        ge=0,
        description="Pooled connections; 0 opens a connection per session (NullPool)"
    )

    # Redis Configuration (Job Queue)
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL"
    )

    # JWT Configuration
    jwt_secret: str = Field(
        default="change-this-in-production-use-long-random-string",
        description="JWT signing secret shared with the identity provider"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_expire_minutes: int = Field(default=60, description="Access token expiry")
    jwt_issuer: Optional[str] = Field(
        default=None,
        description="Expected token issuer; not checked when unset"
    )
    auth_hook_secret: str = Field(
        default="change-this-hook-secret",
        description="Shared secret for identity provider webhooks"
    )

    # Invitations
    company_invitation_days: int = Field(default=7, description="Company invitation lifetime")
    rfp_invitation_days: int = Field(default=30, description="RFP invitation lifetime")

    # Email relay
    email_relay_url: Optional[str] = Field(
        default=None,
        description="HTTP email relay endpoint; email is skipped when unset"
    )
    email_relay_token: Optional[str] = Field(default=None, description="Email relay API token")
    email_from: str = Field(default="no-reply@rfp-portal.local", description="Sender address")
    email_max_attempts: int = Field(default=3, ge=1, description="Delivery attempts per email")
    email_backoff_base: float = Field(default=2.0, ge=0.0, description="Retry backoff base (seconds)")

    # Auto-join
    consumer_email_domains: str = Field(
        default=DEFAULT_CONSUMER_DOMAINS,
        description="Free-mail domains that never trigger auto-join (comma-separated)"
    )

    # Workers
    notification_max_tries: int = Field(default=3, ge=1, description="Notification redelivery attempts")
    status_reconcile_minutes: int = Field(default=15, ge=1, description="RFP status reconcile cadence")

    # Storage Configuration
    data_dir: Path = Field(
        default=Path("./data"),
        description="Data directory for storage"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def consumer_domains(self) -> frozenset[str]:
        """Free-mail denylist as a normalized set."""
        return frozenset(
            domain.strip().lower()
            for domain in self.consumer_email_domains.split(",")
            if domain.strip()
        )

    @property
    def documents_dir(self) -> Path:
        """Directory for stored RFP documents."""
        path = self.data_dir / "documents"
        path.mkdir(parents=True, exist_ok=True)
        return path


# Global settings instance
settings = Settings()
