"""Key enumeration for one database.

``SCAN`` may report a key more than once, so keys are collected into a set
and returned sorted.  The stable order makes batch boundaries reproducible
across runs over the same data.
"""

from collections.abc import Iterator, Sequence

from redis_dump.adapters.base import StoreClient


async def list_keys(client: StoreClient, db: int, pattern: str = "*") -> list[str]:
    """Return every key of database ``db``, deduplicated and sorted.

    Raises:
        StoreConnectionError: If the keyspace cannot be listed.
    """
    keys: set[str] = set()
    async for key in client.scan_keys(db, pattern):
        keys.add(key)
    return sorted(keys)


def iter_batches(keys: Sequence[str], size: int) -> Iterator[list[str]]:
    """Yield consecutive slices of ``keys`` holding at most ``size`` keys."""
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")
    for start in range(0, len(keys), size):
        yield list(keys[start:start + size])
