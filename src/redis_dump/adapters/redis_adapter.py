"""Async Redis store adapter.

Provides ``AsyncRedisAdapter``, an async implementation of the
``StoreClient`` protocol using ``redis.asyncio`` from redis-py.

One adapter is one logical handle on a server.  Redis binds the selected
database to a connection, so the adapter lazily creates one client (and
connection pool) per database index over the same endpoint and closes them
all together.

Usage:
    from redis_dump.adapters.redis_adapter import AsyncRedisAdapter

    adapter = AsyncRedisAdapter("redis://localhost:6379")
    keys = [k async for k in adapter.scan_keys(0)]
    await adapter.close()
"""

from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as aioredis
from redis.commands.core import AsyncScript
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from redis_dump.adapters.base import StoreConnectionError


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Re-raise redis-py transport errors as ``StoreConnectionError``."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        raise StoreConnectionError(str(e) or type(e).__name__) from e


def _strip_database(url: str) -> str:
    """Drop the ``/<db>`` path component so the adapter controls selection."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, "", parts.query, parts.fragment))


class RedisPipeline:
    """``StorePipeline`` over a non-transactional redis-py pipeline."""

    def __init__(self, pipe: Any) -> None:
        self._pipe = pipe

    def set(self, key: str, value: str, px: int | None = None) -> Any:
        return self._pipe.set(key, value, px=px)

    def delete(self, key: str) -> Any:
        return self._pipe.delete(key)

    def rpush(self, key: str, values: Sequence[str]) -> Any:
        return self._pipe.rpush(key, *values)

    def sadd(self, key: str, members: Sequence[str]) -> Any:
        return self._pipe.sadd(key, *members)

    def zadd(self, key: str, mapping: Mapping[str, float]) -> Any:
        return self._pipe.zadd(key, dict(mapping))

    def hset(self, key: str, mapping: Mapping[str, str]) -> Any:
        return self._pipe.hset(key, mapping=dict(mapping))

    def pexpire(self, key: str, millis: int) -> Any:
        return self._pipe.pexpire(key, millis)

    async def execute(self) -> list[Any]:
        """Send queued commands; per-command errors come back as values."""
        with _translate_errors():
            return await self._pipe.execute(raise_on_error=False)


class AsyncRedisAdapter:
    """Async Redis implementation of the ``StoreClient`` protocol.

    Args:
        url: Redis URL (``redis://``, ``rediss://`` or ``unix://``).  A
            database path component, if present, is ignored -- every call
            names its database explicitly.
        password: Optional password, overriding one embedded in the URL.
        scan_count: ``COUNT`` hint passed to ``SCAN``.
        **client_kwargs: Additional keyword arguments forwarded to
            ``redis.asyncio.Redis.from_url``.

    Example:
        adapter = AsyncRedisAdapter("redis://localhost:6379", password="s3cret")
        count = await adapter.key_count(0)
        await adapter.close()
    """

    def __init__(
        self,
        url: str,
        password: str | None = None,
        scan_count: int = 1000,
        **client_kwargs: Any,
    ) -> None:
        self._url: str = _strip_database(url)
        self._scan_count: int = scan_count
        defaults: dict[str, Any] = {
            "decode_responses": True,
            "socket_connect_timeout": 5,
        }
        if password:
            defaults["password"] = password
        # Caller kwargs override defaults
        self._client_kwargs: dict[str, Any] = {**defaults, **client_kwargs}
        self._clients: dict[int, aioredis.Redis] = {}
        self._scripts: dict[tuple[int, str], AsyncScript] = {}

    @property
    def url(self) -> str:
        return self._url

    def _client(self, db: int) -> aioredis.Redis:
        """Get or create the client bound to database ``db``."""
        client = self._clients.get(db)
        if client is None:
            client = aioredis.Redis.from_url(self._url, db=db, **self._client_kwargs)
            self._clients[db] = client
        return client

    # ------------------------------------------------------------------
    # Keyspace
    # ------------------------------------------------------------------

    async def scan_keys(self, db: int, pattern: str = "*") -> AsyncIterator[str]:
        with _translate_errors():
            async for key in self._client(db).scan_iter(match=pattern, count=self._scan_count):
                yield key

    async def key_count(self, db: int) -> int:
        with _translate_errors():
            return int(await self._client(db).dbsize())

    async def database_count(self) -> int:
        """Read ``CONFIG GET databases``.

        Managed services often disable ``CONFIG``; that is reported as
        ``0`` so callers fall back to their default.
        """
        with _translate_errors():
            try:
                reply = await self._client(0).config_get("databases")
            except ResponseError:
                return 0
        try:
            return int(reply.get("databases", 0))
        except (TypeError, ValueError):
            return 0

    async def flush_database(self, db: int) -> None:
        with _translate_errors():
            await self._client(db).flushdb()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def eval_script(
        self,
        db: int,
        script: str,
        keys: Sequence[str],
        args: Sequence[Any] = (),
    ) -> Any:
        """Run a Lua script via ``EVALSHA``, loading it on first use."""
        registered = self._scripts.get((db, script))
        if registered is None:
            registered = self._client(db).register_script(script)
            self._scripts[(db, script)] = registered
        with _translate_errors():
            return await registered(keys=list(keys), args=list(args))

    async def key_type(self, db: int, key: str) -> str:
        with _translate_errors():
            return await self._client(db).type(key)

    async def pttl(self, db: int, key: str) -> int:
        with _translate_errors():
            return int(await self._client(db).pttl(key))

    async def get(self, db: int, key: str) -> str | None:
        with _translate_errors():
            return await self._client(db).get(key)

    async def lrange(self, db: int, key: str) -> list[str]:
        with _translate_errors():
            return await self._client(db).lrange(key, 0, -1)

    async def smembers(self, db: int, key: str) -> set[str]:
        with _translate_errors():
            return set(await self._client(db).smembers(key))

    async def zrange_with_scores(self, db: int, key: str) -> list[tuple[str, float]]:
        with _translate_errors():
            reply = await self._client(db).zrange(key, 0, -1, withscores=True)
        return [(member, float(score)) for member, score in reply]

    async def hgetall(self, db: int, key: str) -> dict[str, str]:
        with _translate_errors():
            return await self._client(db).hgetall(key)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def pipeline(self, db: int) -> RedisPipeline:
        return RedisPipeline(self._client(db).pipeline(transaction=False))

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        """Check the server answers ``PING``.

        Raises:
            StoreConnectionError: If the server cannot be reached.
        """
        with _translate_errors():
            return bool(await self._client(0).ping())

    async def close(self) -> None:
        """Close every per-database client and its connection pool."""
        clients = list(self._clients.values())
        self._clients.clear()
        self._scripts.clear()
        for client in clients:
            await client.aclose()
