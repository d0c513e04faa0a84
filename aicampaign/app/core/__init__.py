"""Core utilities for the campaign service."""

from aicampaign.app.core.cache import (
    CacheBackend,
    InMemoryCache,
    RedisCache,
    get_cache,
    reset_cache,
)
from aicampaign.app.core.config import settings
from aicampaign.app.core.logging import get_logger, setup_logging

__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
    "get_cache",
    "reset_cache",
    "settings",
    "get_logger",
    "setup_logging",
]
