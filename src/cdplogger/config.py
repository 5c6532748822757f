"""Configuration management with pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CdpLoggerSettings(BaseSettings):
    """cdplogger settings loaded from environment variables.

    All settings use the CDP_LOGGER_ prefix for environment variables.
    Command line options of the pytest plugin take precedence.
    """

    # Logging configuration
    log_level: str = Field(default="INFO", description="Logging level")
    json_output: bool = Field(
        default=False,
        description="Render log lines as JSON instead of console format",
    )
    highlight_errors: bool = Field(
        default=True,
        description="Colorize console output so error events stand out",
    )

    # Event filtering
    response_url_filter: str | None = Field(
        default=None,
        description="Default substring a response URL must contain to be logged",
    )

    # Session configuration
    session_open_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for the DevTools connection to open or close",
    )

    model_config = SettingsConfigDict(
        env_prefix="CDP_LOGGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Global settings instance
_settings: CdpLoggerSettings | None = None


def get_settings() -> CdpLoggerSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = CdpLoggerSettings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None
