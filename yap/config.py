"""
Runtime configuration for the YAP services.

Environment variables (or a local .env file) override the defaults below.
"""

from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from yap import __version__

load_dotenv()


class Environment(str, Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Service settings with environment-specific defaults.

    User-facing preferences (auto-transcribe, chunk limits, metrics retention)
    live in the settings store, not here.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT, description="Application environment"
    )

    # API Configuration
    api_title: str = Field(default="YAP API", description="API title for OpenAPI docs")
    api_version: str = Field(default=__version__, description="API version")
    debug: bool = Field(default=True, description="Enable debug mode")

    # Server Configuration
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8090, ge=1, le=65535, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload")

    # Storage
    data_dir: Path = Field(
        default=Path("data"), description="Directory for DuckDB and settings files"
    )

    # Export dispatch
    exporter_relay_url: str | None = Field(
        default=None,
        description="Base URL of the legacy exporter relay (gitlab, github, sftp)",
    )
    export_timeout_seconds: float = Field(
        default=15.0, gt=0, le=300, description="Timeout for a single export attempt"
    )

    # Ollama assistant
    ollama_url: str = Field(
        default="http://localhost:11434", description="Local Ollama runtime"
    )
    ollama_model: str = Field(default="llama3", description="Default chat model")
    ollama_timeout_seconds: float = Field(
        default=120.0, gt=0, description="Timeout for a chat completion"
    )

    # CORS Configuration
    cors_origins: str = Field(
        default="*", description="Allowed CORS origins (comma-separated)"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Enable JSON logging")

    @field_validator("exporter_relay_url", mode="before")
    @classmethod
    def blank_relay_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def profiles_db_path(self) -> Path:
        return self.data_dir / "profiles.duckdb"

    @property
    def metrics_db_path(self) -> Path:
        return self.data_dir / "metrics.duckdb"

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.json"

    def get_environment_display(self) -> str:
        """Get human-readable environment name."""
        return self.environment.value.title()

    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def get_cors_config(self) -> dict[str, Any]:
        """Get CORS middleware configuration."""
        origins = self.cors_origin_list()
        if self.is_production():
            return {
                "allow_origins": [origin for origin in origins if origin != "*"],
                "allow_credentials": True,
                "allow_methods": ["GET", "POST", "PUT", "DELETE"],
                "allow_headers": ["*"],
            }
        return {
            "allow_origins": origins,
            "allow_credentials": True,
            "allow_methods": ["*"],
            "allow_headers": ["*"],
        }


# Global settings instance
settings = Settings()


def configure_structlog() -> None:
    """Initialize structlog on top of stdlib logging."""
    import logging
    import sys

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        stream=sys.stdout,
        force=True,
        format="%(message)s",
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.stdlib.add_log_level,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
