"""
Shared configuration management for the entitlements engine.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SNAPSHOT_TTL_MS = 3_600_000


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )


class EngineConfig(BaseConfig):
    """Entitlements engine configuration.

    Reads ``ACCESS_SNAPSHOT_TTL_MS`` and ``ACCESS_SNAPSHOT_ID_PREFIX`` from the
    environment (or ``.env``).
    """

    snapshot_ttl_ms: int = Field(default=DEFAULT_SNAPSHOT_TTL_MS)
    snapshot_id_prefix: str = Field(default="snap_")

    @field_validator("snapshot_ttl_ms")
    @classmethod
    def _positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("snapshot_ttl_ms must be positive")
        return value


def get_engine_config(**overrides) -> EngineConfig:
    """Get engine configuration from the environment."""
    return EngineConfig(**overrides)
