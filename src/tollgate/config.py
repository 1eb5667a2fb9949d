"""Configuration management for Tollgate using Pydantic settings.

Settings are loaded from environment variables and .env files, with defaults
that suit a local Ollama instance and a five minute approval window.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main configuration settings for Tollgate.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Ollama Configuration (judgment classifier)
    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL used by the judgment classifier",
    )
    ollama_model: str = Field(
        default="qwen3:8b",
        description="Model used to classify ambiguous tool calls",
    )
    ollama_timeout: int = Field(
        default=30,
        description="Timeout for a single Ollama API call in seconds",
        ge=1,
        le=600,
    )

    # Risk Classification
    classifier_timeout: float = Field(
        default=45.0,
        description="Upper bound in seconds for a whole judgment classification",
        gt=0,
        le=600,
    )
    classifier_max_attempts: int = Field(
        default=2,
        description="Attempts made before the judgment oracle gives up",
        ge=1,
        le=10,
    )

    # Approval Gate
    approval_ttl_seconds: float = Field(
        default=300.0,
        description="Seconds a pending approval waits for a human decision",
        gt=0,
    )
    approval_sweep_interval: float = Field(
        default=30.0,
        description="Seconds between background sweeps of expired approvals",
        gt=0,
    )
    nonce_bytes: int = Field(
        default=8,
        description="Random bytes per approval nonce (hex encoded, so twice as many characters)",
        ge=4,
        le=32,
    )

    # Application Settings
    tollgate_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level for the application",
    )
    tollgate_log_file: Path | None = Field(
        default=None,
        description="Optional file path to write JSON logs (defaults to console only)",
    )

    @field_validator("tollgate_log_file", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path | None) -> Path | None:
        """Expand relative paths to absolute paths."""
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @property
    def ollama_base_url(self) -> str:
        """Get the base URL for Ollama API (without trailing slash)."""
        return self.ollama_host.rstrip("/")

    def model_dump_safe(self) -> dict[str, str]:
        """Dump settings as strings, suitable for logging."""
        return {
            "ollama_host": self.ollama_host,
            "ollama_model": self.ollama_model,
            "classifier_timeout": str(self.classifier_timeout),
            "approval_ttl_seconds": str(self.approval_ttl_seconds),
            "log_level": self.tollgate_log_level,
            "log_file": str(self.tollgate_log_file) if self.tollgate_log_file else "",
        }


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Creates and caches the settings on first call.

    Returns:
        Settings: The global settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment/files.

    Returns:
        Settings: The newly loaded settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
