"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "FundFlow"
    app_version: str = "1.0.0"
    debug: bool = True
    environment: str = "development"

    # API
    api_v1_prefix: str = "/api/v1"

    # Redis (stats snapshots, click de-duplication)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "fundflow"
    postgres_password: str = "fundflow_dev"
    postgres_db: str = "fundflow"
    postgres_pool_size: int = 5
    postgres_max_overflow: int = 10

    # JWT Authentication (tokens are issued by the platform auth service)
    jwt_secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"

    # Public URLs
    frontend_url: str = "http://localhost:5173"
    tracking_base_url: str = "http://localhost:8000"  # Host serving /t/pixel and /t/click

    # Outbound SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from_email: str = "noreply@fundflow.dev"
    mail_from_name: str = "FundFlow"

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    # Outreach tracking
    stats_cache_ttl: int = 300  # seconds
    click_dedup_ttl: int = 60 * 60 * 24 * 30
    tracking_rate_limit: str = "120/minute"
    public_share_rate_limit: str = "20/minute"

    # Rate limiting (slowapi storage; point at Redis when running several workers)
    default_rate_limit: str = "100/minute"
    rate_limit_storage_uri: str = "memory://"

    @property
    def redis_url(self) -> str:
        """Build Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def postgres_url(self) -> str:
        """Build PostgreSQL async connection URL."""
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate_production_settings(self) -> None:
        """
        Validate critical settings for production deployment.
        Raises ValueError if any critical settings are using default/insecure values.
        """
        if self.environment == "production":
            errors = []

            if self.jwt_secret_key == "your-secret-key-change-in-production":
                errors.append("JWT_SECRET_KEY must be changed from default value in production")

            if len(self.jwt_secret_key) < 32:
                errors.append("JWT_SECRET_KEY must be at least 32 characters long")

            if not self.postgres_password or self.postgres_password == "fundflow_dev":
                errors.append("POSTGRES_PASSWORD must be set to a secure value in production")

            if self.tracking_base_url.startswith("http://localhost"):
                errors.append("TRACKING_BASE_URL must point at the public backend host in production")

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
