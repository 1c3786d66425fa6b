"""redis-dump: Async point-in-time dump and restore of Redis databases.

Captures every key of one or more logical databases (type, value and
remaining TTL) into a portable JSON snapshot, and restores snapshots with a
safe-by-default policy: non-empty targets are refused unless the operator
asks to overwrite (``force``) or wipe (``flush`` + ``force``) them.

Usage:
    from redis_dump import AsyncRedisAdapter, dump_snapshot, restore_snapshot
    from redis_dump import DumpSettings, RestoreSettings, load_store_config
"""

__version__ = "0.1.0"

# Adapters
from redis_dump.adapters.base import StoreClient, StoreConnectionError
from redis_dump.adapters.redis_adapter import AsyncRedisAdapter

# Config
from redis_dump.config.loader import load_store_config
from redis_dump.config.models import DumpSettings, RestoreSettings, StoreConfig, StoreProfile

# Factory
from redis_dump.factory import ProfileNotFoundError, get_adapter, resolve_url

# Snapshot engine
from redis_dump.snapshot.dump import dump_snapshot
from redis_dump.snapshot.guard import RestoreBlockedError
from redis_dump.snapshot.restore import SnapshotFormatError, restore_snapshot, validate_snapshot

__all__ = [
    # Adapters
    "StoreClient",
    "StoreConnectionError",
    "AsyncRedisAdapter",
    # Config
    "load_store_config",
    "StoreConfig",
    "StoreProfile",
    "DumpSettings",
    "RestoreSettings",
    # Factory
    "get_adapter",
    "resolve_url",
    "ProfileNotFoundError",
    # Snapshot engine
    "dump_snapshot",
    "restore_snapshot",
    "validate_snapshot",
    "RestoreBlockedError",
    "SnapshotFormatError",
]
