"""Pipelined reconstruction of snapshot records into a database.

Per key, by type:

- ``string``: ``SET`` with ``PX`` when the record has a TTL.
- ``list`` / ``set`` / ``zset`` / ``hash``: ``DEL``, then one bulk write
  when the collection is non-empty, then ``PEXPIRE`` when the record has a
  TTL.  An empty collection leaves the key absent.

Keys are written in sorted order, one pipeline per batch.  A key that
fails to decode is skipped; a command the server rejects is logged.
Neither stops the remaining keys.

Usage:
    writer = BatchWriter(adapter, batch_size=100)
    result = await writer.write_database(0, {"greeting": {"Type": "string", "Value": "hi", "TTL": None}})
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from redis_dump.adapters.base import StoreClient, StoreConnectionError, StorePipeline
from redis_dump.snapshot.codec import (
    HashRecord,
    KeyRecord,
    ListRecord,
    SetRecord,
    StringRecord,
    ZSetRecord,
    decode_record,
)
from redis_dump.snapshot.enumerator import iter_batches
from redis_dump.snapshot.observer import NullObserver, ProgressObserver

logger = logging.getLogger(__name__)

# Redis rejects a zero expiry; a key captured with 0 ms left expires at once.
MIN_EXPIRY_MS = 1


class WriteResult(BaseModel):
    """Counts for one database written by ``BatchWriter``."""

    db: int
    restored: int = 0                                       # keys dispatched
    skipped: int = 0                                        # keys that failed to decode
    failed_keys: list[str] = Field(default_factory=list)    # keys with a rejected command


def queue_record(pipe: StorePipeline, key: str, record: KeyRecord) -> int:
    """Queue the commands that rebuild ``key`` from ``record``.

    Returns:
        Number of commands queued.
    """
    ttl = None if record.ttl is None else max(record.ttl, MIN_EXPIRY_MS)

    if isinstance(record, StringRecord):
        pipe.set(key, record.value, px=ttl)
        return 1

    pipe.delete(key)
    if not record.value:
        return 1

    match record:
        case ListRecord():
            pipe.rpush(key, list(record.value))
        case SetRecord():
            pipe.sadd(key, sorted(record.value))
        case ZSetRecord():
            pipe.zadd(key, {e.member: e.score for e in record.value})
        case HashRecord():
            pipe.hset(key, dict(record.value))
        case _:
            raise TypeError(f"Not a key record: {type(record).__name__}")

    if ttl is None:
        return 2
    pipe.pexpire(key, ttl)
    return 3


class BatchWriter:
    """Rebuild the keys of one database from snapshot records.

    Args:
        client: Store client for the restore target.
        batch_size: Keys per pipeline round trip.
        observer: Optional progress observer.
    """

    def __init__(
        self,
        client: StoreClient,
        batch_size: int = 100,
        observer: ProgressObserver | None = None,
    ) -> None:
        self._client = client
        self._batch_size = batch_size
        self._observer = observer or NullObserver()

    async def write_database(self, db: int, records: Mapping[str, Any]) -> WriteResult:
        """Write every decodable record of ``records`` into database ``db``.

        Args:
            db: Target database index.
            records: Key name -> raw snapshot record (``Type``/``Value``/``TTL``).

        Returns:
            ``WriteResult`` for the database.

        Raises:
            StoreConnectionError: If the connection fails.
        """
        result = WriteResult(db=db)
        keys = sorted(records)

        for batch_index, batch in enumerate(iter_batches(keys, self._batch_size)):
            self._observer.on_batch_start(db, batch_index, len(batch))
            pipe = self._client.pipeline(db)
            owners: list[str] = []   # key owning each queued command

            for key in batch:
                try:
                    record = decode_record(records[key])
                    queued = queue_record(pipe, key, record)
                except StoreConnectionError:
                    raise
                except Exception as e:
                    logger.debug(f"Error restoring key {key!r} to database {db}: {e}")
                    result.skipped += 1
                else:
                    owners.extend([key] * queued)
                    result.restored += 1
                self._observer.on_key_processed(db, key)

            if not owners:
                continue

            replies = await pipe.execute()
            for key, reply in zip(owners, replies):
                if isinstance(reply, Exception):
                    logger.debug(f"Write for key {key!r} in database {db} failed: {reply}")
                    if key not in result.failed_keys:
                        result.failed_keys.append(key)

        self._observer.on_database_done(db, result.restored)
        return result
