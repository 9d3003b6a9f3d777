"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates cache sizing and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        ODATA_ENDPOINT: Root URL of the OData service
        ODATA_API_KEY: API key sent in the ApiKey header
        EDM_SCHEMA_NAMESPACE: Namespace holding EntityType definitions
        ENTITY_SCHEMA_NAMESPACE: Namespace holding the EntityContainer
        CACHE_MAX_ENTRY_BYTES: Per-entry size limit of the cache backend
        CACHE_MAX_CHUNK_LENGTH: Maximum chunk length written by the sharded cache
        CACHE_MAX_TTL_SECONDS: Longest TTL the backend will honor
        DEFAULT_CACHE_TTL_MINUTES: TTL used when the user gives none or an invalid one
        MAX_CACHE_TTL_MINUTES: Largest TTL a user may configure
        ROW_SIZE_MULTIPLIER: Safety factor for row size estimates
        CACHE_STRATEGY: "sharded" (compressed blob) or "rows" (row groups)
        CACHE_DIR: Directory for the persistent cache and user properties
        LOG_LEVEL: Logging level
        DEBUG: Verbose request logging
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OData service
    ODATA_ENDPOINT: str = Field(default="", description="Root URL of the OData service")
    ODATA_API_KEY: str | None = Field(default=None, description="OData API key")
    EDM_SCHEMA_NAMESPACE: str = Field(
        default="Venio.OData.API.Models",
        description="Namespace of the EDM schema holding entity types",
    )
    ENTITY_SCHEMA_NAMESPACE: str = Field(
        default="Default",
        description="Namespace of the schema listing entity sets",
    )
    REQUEST_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0.0, description="HTTP request timeout"
    )

    # Cache backend limits
    CACHE_MAX_ENTRY_BYTES: int = Field(
        default=100_000, ge=1, description="Max bytes per cache entry (100KB)"
    )
    CACHE_MAX_CHUNK_LENGTH: int = Field(
        default=90_000, ge=1, description="Max characters per sharded cache chunk"
    )
    CACHE_MAX_TTL_SECONDS: int = Field(
        default=21_600, ge=0, description="Longest TTL the backend honors (6 hours)"
    )

    # Cache policy
    DEFAULT_CACHE_TTL_MINUTES: int = Field(
        default=25, ge=0, description="Default data cache TTL in minutes"
    )
    MAX_CACHE_TTL_MINUTES: int = Field(
        default=60, ge=0, description="Largest user-configurable TTL in minutes"
    )
    ROW_SIZE_MULTIPLIER: float = Field(
        default=1.5, ge=1.0, description="Row size estimate safety factor"
    )
    CACHE_STRATEGY: Literal["sharded", "rows"] = Field(
        default="sharded", description="How fetched rows are cached"
    )

    # Directories
    CACHE_DIR: Path = Field(default=Path(".cache"), description="Cache directory")

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    DEBUG: bool = Field(default=False, description="Verbose request logging")

    @model_validator(mode="after")
    def validate_cache_sizing(self) -> Settings:
        """Ensure chunks fit in a backend entry and TTL bounds are coherent."""
        if self.CACHE_MAX_CHUNK_LENGTH > self.CACHE_MAX_ENTRY_BYTES:
            raise ValueError(
                "CACHE_MAX_CHUNK_LENGTH must not exceed CACHE_MAX_ENTRY_BYTES"
            )
        if self.DEFAULT_CACHE_TTL_MINUTES > self.MAX_CACHE_TTL_MINUTES:
            raise ValueError(
                "DEFAULT_CACHE_TTL_MINUTES must not exceed MAX_CACHE_TTL_MINUTES"
            )
        if self.MAX_CACHE_TTL_MINUTES * 60 > self.CACHE_MAX_TTL_SECONDS:
            raise ValueError(
                "MAX_CACHE_TTL_MINUTES must not exceed CACHE_MAX_TTL_SECONDS"
            )
        return self

    @property
    def default_cache_ttl_seconds(self) -> int:
        """Default data cache TTL in seconds."""
        return self.DEFAULT_CACHE_TTL_MINUTES * 60

    @property
    def cache_db_path(self) -> Path:
        """Location of the persistent SQLite cache."""
        return self.CACHE_DIR / "cache.db"

    @property
    def properties_path(self) -> Path:
        """Location of the persisted user properties."""
        return self.CACHE_DIR / "properties.json"

    def ensure_directories(self) -> None:
        """Create the cache directory if it doesn't exist."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)

    def redacted_display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings with API keys redacted for display."""
        def redact(value: str | None) -> str | None:
            if value is None:
                return None
            return f"{value[:4]}...{value[-4:]}" if len(value) > 12 else "***"

        return {
            "ODATA_ENDPOINT": self.ODATA_ENDPOINT,
            "ODATA_API_KEY": redact(self.ODATA_API_KEY),
            "EDM_SCHEMA_NAMESPACE": self.EDM_SCHEMA_NAMESPACE,
            "ENTITY_SCHEMA_NAMESPACE": self.ENTITY_SCHEMA_NAMESPACE,
            "CACHE_MAX_ENTRY_BYTES": self.CACHE_MAX_ENTRY_BYTES,
            "CACHE_MAX_CHUNK_LENGTH": self.CACHE_MAX_CHUNK_LENGTH,
            "CACHE_MAX_TTL_SECONDS": self.CACHE_MAX_TTL_SECONDS,
            "DEFAULT_CACHE_TTL_MINUTES": self.DEFAULT_CACHE_TTL_MINUTES,
            "MAX_CACHE_TTL_MINUTES": self.MAX_CACHE_TTL_MINUTES,
            "ROW_SIZE_MULTIPLIER": self.ROW_SIZE_MULTIPLIER,
            "CACHE_STRATEGY": self.CACHE_STRATEGY,
            "CACHE_DIR": str(self.CACHE_DIR),
            "LOG_LEVEL": self.LOG_LEVEL,
            "DEBUG": self.DEBUG,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
