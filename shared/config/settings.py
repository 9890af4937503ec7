"""Common settings layer for the gateway services.

Provides typed, validated configuration with support for:
- Environment variable loading
- .env file support
- Module-specific subclasses (see ``multirouter.config``)
"""

from enum import Enum

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings
from pydantic_settings import SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Log level configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BaseSettings(PydanticBaseSettings):
    """Base settings shared by every service.

    Subclass this for service-specific settings; all fields can be
    overridden through environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application metadata
    app_name: str = Field(default="multirouter", description="Application name")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="json",
        description="Log format: 'json' or 'text'",
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")

    @model_validator(mode="after")
    def validate_settings(self) -> "BaseSettings":
        """Force debug logging when debug mode is on."""
        if self.debug and self.log_level != LogLevel.DEBUG:
            object.__setattr__(self, "log_level", LogLevel.DEBUG)
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING
