"""
TTL-Cache Configuration Settings

This module contains the configuration defaults for the cache engine.
Every value can be overridden through the environment, and every engine
constructor argument overrides the corresponding setting.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Cache engine configuration settings."""

    # Eviction settings
    EVICTION_PERIOD: float = float(os.environ.get("TTL_CACHE_EVICTION_PERIOD", "1"))
    DEFAULT_TTL: int = int(os.environ.get("TTL_CACHE_DEFAULT_TTL", "0"))  # 0 means no expiration
    DEFAULT_UNIT: str = os.environ.get("TTL_CACHE_DEFAULT_UNIT", "SECONDS").upper()

    # Worker settings
    MAX_PENDING: int = int(os.environ.get("TTL_CACHE_MAX_PENDING", "0"))  # 0 means unbounded
    SHUTDOWN_TIMEOUT: float = float(os.environ.get("TTL_CACHE_SHUTDOWN_TIMEOUT", "30"))

    # Logging settings
    DEBUG: bool = os.environ.get("TTL_CACHE_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("TTL_CACHE_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
