"""TOML configuration loader for connection profiles and defaults."""

import tomllib
from pathlib import Path

from redis_dump.config.models import StoreConfig, StoreProfile

DEFAULT_CONFIG_FILE = "redis-dump.toml"


def load_store_config(config_path: Path | None = None) -> StoreConfig:
    """Load store configuration from a TOML file.

    Expected layout::

        [defaults]
        batch_size = 200
        database_count = 16

        [profiles.local]
        url = "redis://localhost:6379"
        description = "Local development"

    Args:
        config_path: Path to the TOML file (default: ./redis-dump.toml)

    Returns:
        StoreConfig with all profiles

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Store config not found: {config_path}\n"
            f"Create it with a [profiles.<name>] table per server."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = StoreProfile(**profile_data)

    # Parse defaults
    defaults = data.get("defaults", {})

    return StoreConfig(
        profiles=profiles,
        batch_size=defaults.get("batch_size", 100),
        database_count=defaults.get("database_count", 16),
    )
