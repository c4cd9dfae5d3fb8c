"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Task API", description="Title shown in the OpenAPI docs")
    app_env: Literal["development", "staging", "production"] = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False, description="Render logs as JSON lines")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3333)
    workers: int = Field(default=4)

    # Database
    database_url: str = Field(
        default="sqlite:///./task_api.db",
        description="Database connection URL (PostgreSQL, MySQL, or SQLite)",
    )
    database_pool_size: int = Field(default=10)
    database_max_overflow: int = Field(default=20)
    database_pool_timeout: int = Field(default=30)

    # Redis (caching and rate limiting)
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_socket_timeout: float = Field(default=5.0, gt=0)
    redis_connect_timeout: float = Field(default=5.0, gt=0)
    cache_ttl: int = Field(default=60, gt=0, description="Cache TTL in seconds")

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_max: int = Field(default=100, ge=1, description="Requests per window")
    rate_limit_window: int = Field(default=900, ge=1, description="Window in seconds")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    def validate_production_settings(self) -> list[str]:
        """Validate settings for production readiness."""
        errors = []

        if self.is_production:
            if self.debug:
                errors.append("DEBUG must be False in production")

            if self.database_url.startswith("sqlite"):
                errors.append("SQLite is not recommended for production; use PostgreSQL")

            if "localhost" in self.redis_url:
                errors.append("REDIS_URL points at localhost in production")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache (for testing)."""
    get_settings.cache_clear()
