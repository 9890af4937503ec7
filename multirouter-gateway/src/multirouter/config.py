"""Configuration for the MultiRouter gateway.

Extends the shared configuration with gateway-specific settings. The
provider list itself lives in ``providers.yaml`` (see
``multirouter.providers.loader``); these settings only cover the process.
"""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import SettingsConfigDict

from shared.config import BaseSettings


class GatewaySettings(BaseSettings):
    """MultiRouter gateway settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Provider configuration file
    providers_config_path: str = Field(
        default="providers.yaml",
        description="Path to the providers YAML file",
    )

    # Authentication
    api_key: SecretStr | None = Field(
        default=None,
        description="Bearer token clients must present (auth disabled if unset)",
    )

    # Rate Limiting
    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable per-client rate limiting",
    )
    rate_limit_max: int = Field(
        default=100,
        gt=0,
        description="Requests per minute per client",
    )

    # Upstream HTTP client
    request_timeout: float = Field(
        default=120.0,
        description="Upstream read timeout in seconds",
    )
    connect_timeout: float = Field(
        default=10.0,
        description="Upstream connection timeout in seconds",
    )

    # CORS
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins",
    )

    @property
    def auth_enabled(self) -> bool:
        """Whether clients must authenticate."""
        return bool(self.api_key and self.api_key.get_secret_value())


@lru_cache
def get_gateway_settings() -> GatewaySettings:
    """Get cached gateway settings instance.

    Call ``get_gateway_settings.cache_clear()`` to reload.

    Returns:
        GatewaySettings instance with loaded configuration.
    """
    return GatewaySettings()
