"""Configuration for docshape.

Settings are read from ``DOCSHAPE_*`` environment variables and an optional
``.env`` file. Connection pooling and retry behavior are the driver's job;
these settings only forward the corresponding pymongo client options.
"""

from typing import Any, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docshape.errors import ConfigurationError


class DocShapeConfig(BaseSettings):
    """Process-level settings for connecting to MongoDB."""

    model_config = SettingsConfigDict(
        env_prefix="DOCSHAPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Connection ---
    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string",
    )
    database: str = Field(default="docshape", description="Database name")
    app_name: Optional[str] = Field(default=None, description="Reported to the server")

    # --- Pooling ---
    max_pool_size: int = Field(default=10, ge=1)
    min_pool_size: int = Field(default=0, ge=0)

    # --- Timeouts ---
    connect_timeout_ms: int = Field(default=10_000, ge=0)
    server_selection_timeout_ms: int = Field(default=10_000, ge=0)

    # --- Driver retries ---
    retry_reads: bool = True
    retry_writes: bool = True

    # --- Observability ---
    log_level: str = "INFO"

    @model_validator(mode="after")
    def check_pool_bounds(self) -> "DocShapeConfig":
        if self.min_pool_size > self.max_pool_size:
            raise ConfigurationError(
                f"min_pool_size ({self.min_pool_size}) cannot exceed "
                f"max_pool_size ({self.max_pool_size})",
                option="min_pool_size",
            )
        return self

    def client_options(self) -> dict[str, Any]:
        """Render the keyword options passed to ``AsyncMongoClient``."""
        options: dict[str, Any] = {
            "maxPoolSize": self.max_pool_size,
            "minPoolSize": self.min_pool_size,
            "connectTimeoutMS": self.connect_timeout_ms,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "retryReads": self.retry_reads,
            "retryWrites": self.retry_writes,
        }
        if self.app_name:
            options["appname"] = self.app_name
        return options


_config: Optional[DocShapeConfig] = None


def get_config() -> DocShapeConfig:
    """Load and cache the process configuration."""
    global _config
    if _config is None:
        _config = DocShapeConfig()
    return _config


def reset_config() -> None:
    """Forget the cached configuration so the next call reloads it."""
    global _config
    _config = None
