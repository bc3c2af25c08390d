"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the API, the worker and scripts.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="daily_health")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)
    # Full SQLAlchemy URL; overrides the POSTGRES_* parts when set
    # (e.g. "sqlite:///./local.db" for a laptop run).
    DATABASE_URL: Optional[str] = Field(default=None)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration (refresh locks; optional at runtime)
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # Whoop API Configuration
    WHOOP_CLIENT_ID: Optional[str] = Field(default=None)
    WHOOP_CLIENT_SECRET: Optional[str] = Field(default=None)
    WHOOP_REDIRECT_URI: Optional[str] = Field(default=None)
    WHOOP_API_BASE: str = Field(default="https://api.prod.whoop.com")
    WHOOP_SCOPES: str = Field(
        default="read:recovery read:cycles read:sleep read:workout read:profile offline"
    )
    # Records per page requested from the collection endpoints.
    WHOOP_PAGE_SIZE: int = Field(default=25, ge=1, le=25)
    # Tokens expiring within this window are refreshed before use.
    WHOOP_TOKEN_REFRESH_MARGIN_S: int = Field(default=300)
    # Max parallel calls when fanning out independent reads.
    WHOOP_SYNC_FANOUT: int = Field(default=4, ge=1)
    # Default look-back windows (days)
    WHOOP_METRICS_SYNC_DAYS: int = Field(default=7)
    WHOOP_WORKOUTS_SYNC_DAYS: int = Field(default=30)
    WHOOP_CRON_SYNC_DAYS: int = Field(default=2)

    # Token Encryption
    TOKEN_ENCRYPTION_KEY: Optional[str] = Field(default=None)

    # JWT Authentication - REQUIRED for session token validation
    SECRET_KEY: str = Field(
        default=...,  # Required - no default
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

    # Shared secret expected by the scheduled trigger endpoints
    # (sent as "Authorization: Bearer <CRON_SECRET>").
    CRON_SECRET: Optional[str] = Field(default=None)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # External API Configuration
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Web app base URL (for OAuth redirects back to the UI).
    WEB_APP_BASE_URL: str = Field(default="http://localhost:3000")

    # OAuth state TTL for provider callbacks (seconds).
    OAUTH_STATE_TTL_S: int = Field(default=600)

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )


# Global settings instance
settings = Settings()
