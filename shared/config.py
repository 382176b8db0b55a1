"""
Shared configuration management for the memoization layer.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="MEMO_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class MemoizeConfig(BaseConfig):
    """Cache backend and key-building settings."""

    # Backend selection
    backend: Literal["memory", "ttl_memory", "redis"] = Field(default="memory")
    max_entries: Optional[int] = Field(default=None, ge=1)

    # Redis backend
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="memo:")

    # Reject key arguments whose text embeds an object identity
    strict_keys: bool = Field(default=False)


def get_config(**overrides) -> MemoizeConfig:
    """Get memoization configuration, environment first, then overrides."""
    return MemoizeConfig(**overrides)
