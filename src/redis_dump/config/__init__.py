"""Configuration management: profiles, TOML loading, and run settings.

Usage:
    >>> from redis_dump.config import load_store_config, DumpSettings, RestoreSettings
"""

from redis_dump.config.loader import load_store_config
from redis_dump.config.models import (
    FLUSH_WITHOUT_FORCE_MESSAGE,
    DumpSettings,
    RestoreSettings,
    SharedSettings,
    StoreConfig,
    StoreProfile,
)

__all__ = [
    "load_store_config",
    "StoreConfig",
    "StoreProfile",
    "SharedSettings",
    "DumpSettings",
    "RestoreSettings",
    "FLUSH_WITHOUT_FORCE_MESSAGE",
]
