"""Store adapters package.

Provides the ``StoreClient`` / ``StorePipeline`` Protocols and the
redis-py backed ``AsyncRedisAdapter``.

Usage:
    from redis_dump.adapters import StoreClient, AsyncRedisAdapter
"""

from redis_dump.adapters.base import StoreClient, StoreConnectionError, StorePipeline
from redis_dump.adapters.redis_adapter import AsyncRedisAdapter, RedisPipeline

__all__ = [
    "StoreClient",
    "StorePipeline",
    "StoreConnectionError",
    "AsyncRedisAdapter",
    "RedisPipeline",
]
