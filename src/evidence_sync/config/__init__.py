"""Evidence Sync configuration module.

Provides centralized configuration management using pydantic-settings.

Usage:
    from evidence_sync.config import get_settings

    settings = get_settings()
    print(settings.process_interval)
"""

from functools import lru_cache

from evidence_sync.config.settings import Settings

__all__ = ["Settings", "get_settings"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns a singleton Settings instance loaded from environment variables.
    To reload settings, call get_settings.cache_clear() first.
    """
    return Settings()
