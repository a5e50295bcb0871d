"""
Single source of truth for application configuration.
All settings are typed and loaded from environment variables.
"""
from functools import lru_cache
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SslMode = Literal["disable", "allow", "prefer", "require", "verify-ca", "verify-full"]


class Settings(BaseSettings):
    """
    Application settings.

    - The proxy pool is only created when DB_HOST is set
    - All settings have sensible defaults for local development
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # === Service ===
    SERVICE_NAME: str = Field(default="datallm-backend")
    ENVIRONMENT: str = Field(
        default="production",
        description="'development' exposes raw driver messages in error details"
    )
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3001, ge=1, le=65535)

    # === Logging ===
    LOG_LEVEL: str = Field(default="INFO")
    LOG_DIR: str = Field(default="logs")
    LOG_TO_FILE: bool = Field(
        default=False,
        description="Write logs/error.log and logs/combined.log"
    )

    # === API Configuration ===
    ALLOWED_ORIGINS: list[str] = Field(
        default=["*"],
        description="CORS allowed origins"
    )
    API_KEY: Optional[str] = Field(
        default=None,
        description="Key required by /api/* routes (x-api-key or Bearer)"
    )

    # === Proxy pool database ===
    DB_HOST: Optional[str] = Field(default=None)
    DB_PORT: int = Field(default=5432, ge=1, le=65535)
    DB_NAME: Optional[str] = Field(default=None)
    DB_USER: Optional[str] = Field(default=None)
    DB_PASSWORD: Optional[str] = Field(default=None)
    DB_SSL_MODE: SslMode = Field(default="require")
    DB_CONNECTION_TIMEOUT: int = Field(
        default=30,
        ge=1,
        description="Connect timeout in seconds"
    )
    DB_QUERY_TIMEOUT: int = Field(
        default=60,
        ge=1,
        description="Statement timeout in seconds"
    )
    DB_MAX_CONNECTIONS: int = Field(default=20, ge=1, le=500)
    DB_IDLE_TIMEOUT: int = Field(
        default=30,
        ge=1,
        description="Seconds before an idle pooled connection is recycled"
    )

    # === Transient connections ===
    DEFAULT_CONNECTION_TIMEOUT: int = Field(default=30, ge=1)
    TEST_CONNECTION_TIMEOUT: int = Field(default=10, ge=1)
    MAX_QUERY_LENGTH: int = Field(default=10000, ge=1)

    # === Rate Limiting ===
    RATE_LIMIT_REQUESTS: int = Field(
        default=100,
        ge=1,
        description="Max requests per window"
    )
    RATE_LIMIT_WINDOW_SECONDS: int = Field(
        default=900,
        ge=1,
        description="Rate limit window in seconds"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names."""
        return v.upper()

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def proxy_db_configured(self) -> bool:
        """Check if the shared proxy pool has a target database."""
        return bool(self.DB_HOST and self.DB_NAME and self.DB_USER)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This is the single entry point for all configuration.
    The LRU cache ensures we only parse env vars once.
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Force reload settings from environment.
    Useful for testing or when env vars change at runtime.
    """
    get_settings.cache_clear()
    return get_settings()
