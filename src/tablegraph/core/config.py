"""
Application configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Any

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

    # ==========================================================================
    # Application Settings
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    app_name: str = Field(default="TableGraph", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    api_v1_prefix: str = Field(default="/api/v1", description="API v1 prefix")

    # WARNING: The default value is for development only!
    secret_key: str = Field(
        default="dev-secret-key-change-in-production-7f3c91",
        description="Secret key for JWT tokens - MUST be set in production",
    )
    access_token_expire_minutes: int = Field(
        default=60, description="Access token lifetime in minutes"
    )

    @field_validator("secret_key", mode="before")
    @classmethod
    def validate_secret_key(cls, v: str, info) -> str:
        """Ensure secret key is properly set in production."""
        environment = info.data.get("environment", "development")
        if environment == "production" and (v.startswith("dev-") or "change" in v):
            raise ValueError(
                "SECRET_KEY must be set to a secure random string in production."
            )
        return v

    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173", "http://localhost:8000"],
        description="Allowed CORS origins",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ==========================================================================
    # Database Configuration
    # ==========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./tablegraph.db",
        description="Async SQLAlchemy connection string",
    )
    db_pool_size: int = Field(default=20, description="Database connection pool size")
    db_max_overflow: int = Field(default=10, description="Max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    auto_create_schema: bool = Field(
        default=True,
        description="Create missing tables on startup outside production; "
        "deployed databases are migrated with alembic upgrade head",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Ensure PostgreSQL URLs use the asyncpg driver."""
        if v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    # ==========================================================================
    # Table Engine Policy
    # ==========================================================================
    bulk_rpc_enabled: bool = Field(
        default=True,
        description="Allow bulk operations to use server-side stored procedures",
    )
    bulk_insert_chunk_size: int = Field(
        default=100, ge=1, description="Rows persisted per bulk insert chunk"
    )
    max_bulk_rows: int = Field(
        default=5000, ge=1, description="Largest accepted bulk operation batch"
    )
    duplicate_order_step: float = Field(
        default=0.001, gt=0, description="Order increment for duplicated rows"
    )
    recompute_max_depth: int = Field(
        default=16, ge=1, description="Maximum hops for reverse recompute propagation"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
