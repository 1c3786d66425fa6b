"""Store client protocol definition.

Defines the ``StoreClient`` Protocol that the dump/restore engine talks to,
and the ``StorePipeline`` Protocol used for batched writes.  All round-trip
methods are ``async def`` -- the library is async-first.

Every method that addresses data takes the logical database index as its
first argument, so one client handle can be shared across all databases of
a run.

Usage:
    from redis_dump.adapters.base import StoreClient

    async def do_work(client: StoreClient) -> None:
        keys = [k async for k in client.scan_keys(0)]
        kind = await client.key_type(0, keys[0])
        pipe = client.pipeline(1)
        pipe.set("greeting", "hello")
        await pipe.execute()
        await client.close()
"""

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, Protocol


class StoreConnectionError(Exception):
    """Raised when the store cannot be reached or the connection drops.

    This is the only transport-level error the engine lets through; every
    other store error is treated as a per-key or per-batch failure.
    """

    pass


class StorePipeline(Protocol):
    """Queue of write commands sent to the store in one round trip.

    Queuing methods return immediately; nothing is sent until ``execute``.
    """

    def set(self, key: str, value: str, px: int | None = None) -> Any:
        """Queue ``SET key value [PX px]``."""
        ...

    def delete(self, key: str) -> Any:
        """Queue ``DEL key``."""
        ...

    def rpush(self, key: str, values: Sequence[str]) -> Any:
        """Queue ``RPUSH key v1 v2 ...``."""
        ...

    def sadd(self, key: str, members: Sequence[str]) -> Any:
        """Queue ``SADD key m1 m2 ...``."""
        ...

    def zadd(self, key: str, mapping: Mapping[str, float]) -> Any:
        """Queue ``ZADD key s1 m1 s2 m2 ...``."""
        ...

    def hset(self, key: str, mapping: Mapping[str, str]) -> Any:
        """Queue ``HSET key f1 v1 f2 v2 ...``."""
        ...

    def pexpire(self, key: str, millis: int) -> Any:
        """Queue ``PEXPIRE key millis``."""
        ...

    async def execute(self) -> list[Any]:
        """Send every queued command and wait for all replies.

        Returns:
            One reply per queued command, in queue order.  A command the
            server rejected is returned as an ``Exception`` instance in its
            slot instead of being raised.

        Raises:
            StoreConnectionError: If the connection fails.
        """
        ...


class StoreClient(Protocol):
    """Store client interface consumed by the dump/restore engine.

    This Protocol keeps the engine independent of the transport library;
    tests substitute an in-memory implementation.
    """

    def scan_keys(self, db: int, pattern: str = "*") -> AsyncIterator[str]:
        """Iterate over the keys of a database with a cursor.

        The same key may be yielded more than once; callers deduplicate.
        """
        ...

    async def key_count(self, db: int) -> int:
        """Return the number of keys in a database (``DBSIZE``)."""
        ...

    async def database_count(self) -> int:
        """Return how many logical databases the server exposes.

        Returns ``0`` when the server does not report it.
        """
        ...

    async def flush_database(self, db: int) -> None:
        """Delete every key of a database (``FLUSHDB``)."""
        ...

    async def eval_script(
        self,
        db: int,
        script: str,
        keys: Sequence[str],
        args: Sequence[Any] = (),
    ) -> Any:
        """Run a server-side Lua script and return its raw reply.

        Raises:
            Exception: Any server-side error (scripting disabled, syntax
                error, ...) is raised as-is.
        """
        ...

    async def key_type(self, db: int, key: str) -> str:
        """Return the type name of a key (``"none"`` if it does not exist)."""
        ...

    async def pttl(self, db: int, key: str) -> int:
        """Return the remaining TTL in milliseconds, or ``-1``/``-2``."""
        ...

    async def get(self, db: int, key: str) -> str | None:
        ...

    async def lrange(self, db: int, key: str) -> list[str]:
        ...

    async def smembers(self, db: int, key: str) -> set[str]:
        ...

    async def zrange_with_scores(self, db: int, key: str) -> list[tuple[str, float]]:
        ...

    async def hgetall(self, db: int, key: str) -> dict[str, str]:
        ...

    def pipeline(self, db: int) -> StorePipeline:
        """Create a non-transactional write pipeline bound to a database."""
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        """Close all connections and clean up resources."""
        ...
