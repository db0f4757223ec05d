"""
Configuration for the FantaAiuto backend.

Settings come from environment variables (prefix FANTAAIUTO_) or a .env file,
with defaults suitable for local development.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Supports loading from .env files and environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="FANTAAIUTO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="FantaAiuto API", description="Application name")
    app_version: str = Field(default="1.0.0", description="Reported by /health")
    environment: str = Field(
        default="development",
        description="'development' or 'production'; production hides tracebacks from error bodies",
    )

    # Database
    database_path: str = Field(default="data/fantaaiuto.db", description="SQLite database file")
    db_pool_size: int = Field(default=5, ge=1, le=50, description="Pooled connections per process")

    # Authentication
    jwt_secret_key: str = Field(
        default="fantaaiuto-dev-secret-change-in-production",
        description="Secret used to sign bearer tokens",
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        description="Token lifetime in minutes (7 days)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR, CRITICAL")
    log_dir: str = Field(default="logs", description="Directory for the rotating log file")
    log_file: str = Field(default="fantaaiuto.log", description="Empty string disables file logging")

    # HTTP
    host: str = Field(default="0.0.0.0", description="Bind address for the uvicorn runner")
    port: int = Field(default=3001, description="Bind port for the uvicorn runner")
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:5173",
            "http://localhost:8084",
            "http://localhost:8085",
            "http://localhost:8086",
        ],
    )
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100/15minutes"
    rate_limit_auth: str = "50/15minutes"

    # Import pipeline
    import_batch_size: int = Field(default=100, ge=1, le=500)
    import_max_rows: int = Field(default=5000, ge=1)
    default_season: str = "2025-26"

    # Uploads
    upload_dir: str = Field(default="uploads", description="Root directory for uploaded files")
    max_image_bytes: int = Field(default=5 * 1024 * 1024, description="Formation image size cap")

    @property
    def debug(self) -> bool:
        return self.environment.lower() != "production"


# Global settings instance
settings = Settings()
