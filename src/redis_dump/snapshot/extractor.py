"""Batched key extraction with a per-key fallback.

For every batch the extractor first runs one Lua script that reads type,
TTL and value of all keys in a single round trip.  If the script cannot
run (scripting disabled, command renamed, unexpected reply) the same batch
is read again key by key with native commands.  Both paths normalize
replies to the same native shapes and build records through
``build_record``, so they yield identical records for the same data.

Known limitation: the per-key path reads TTL and value with separate
commands, so a key expiring between the two reads may be recorded with a
stale TTL.  The script path reads both atomically.

Usage:
    extractor = BatchExtractor(adapter)
    records = await extractor.extract(0, ["user:1", "user:2"])
"""

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from redis_dump.adapters.base import StoreClient, StoreConnectionError
from redis_dump.snapshot.codec import SUPPORTED_TYPES, KeyRecord, ValueType, build_record

logger = logging.getLogger(__name__)


BATCH_READ_SCRIPT = """
local result = {}
for _, key in ipairs(KEYS) do
    local kind = redis.call('TYPE', key)['ok']
    local entry = {type = kind, ttl = redis.call('PTTL', key)}
    if kind == 'string' then
        entry['value'] = redis.call('GET', key)
    elseif kind == 'list' then
        entry['value'] = redis.call('LRANGE', key, 0, -1)
    elseif kind == 'set' then
        entry['value'] = redis.call('SMEMBERS', key)
    elseif kind == 'zset' then
        entry['value'] = redis.call('ZRANGE', key, 0, -1, 'WITHSCORES')
    elseif kind == 'hash' then
        entry['value'] = redis.call('HGETALL', key)
    end
    result[key] = entry
end
return cjson.encode(result)
"""


class BatchScriptResult(BaseModel):
    """Outcome of one scripted batch read."""

    success: bool
    entries: dict[str, Any] = Field(default_factory=dict)   # key -> {type, ttl, value}
    error: str | None = None


async def run_script_batch(client: StoreClient, db: int, keys: list[str]) -> BatchScriptResult:
    """Read a batch with ``BATCH_READ_SCRIPT``.

    Any failure other than a lost connection is reported as
    ``success=False`` instead of being raised.

    Raises:
        StoreConnectionError: If the connection fails.
    """
    try:
        reply = await client.eval_script(db, BATCH_READ_SCRIPT, keys)
    except StoreConnectionError:
        raise
    except Exception as e:
        return BatchScriptResult(success=False, error=f"{type(e).__name__}: {e}")

    try:
        payload = json.loads(reply)
    except (TypeError, ValueError) as e:
        return BatchScriptResult(success=False, error=f"Unreadable script reply: {e}")

    # cjson encodes an empty table as an empty object or array
    if payload == []:
        payload = {}
    if not isinstance(payload, dict):
        return BatchScriptResult(
            success=False,
            error=f"Script reply is a {type(payload).__name__}, expected an object",
        )
    return BatchScriptResult(success=True, entries=payload)


def _as_list(value: Any) -> list:
    # cjson cannot tell an empty array from an empty object
    if value == {}:
        return []
    if not isinstance(value, list):
        raise ValueError(f"Expected an array, got {type(value).__name__}")
    return value


def _pairs(flat: list) -> list[tuple[Any, Any]]:
    if len(flat) % 2:
        raise ValueError(f"Expected an even number of items, got {len(flat)}")
    return list(zip(flat[0::2], flat[1::2]))


def unpack_script_entry(entry: Any) -> tuple[str, Any, Any]:
    """Convert one script entry into ``(type, ttl, native value)``.

    The native value has the same shape the per-key reads return.

    Raises:
        ValueError: If the entry is malformed.
    """
    if not isinstance(entry, dict) or not isinstance(entry.get("type"), str):
        raise ValueError(f"Malformed script entry: {entry!r}")

    type_name = entry["type"]
    ttl = entry.get("ttl")
    value = entry.get("value")

    if type_name in (ValueType.LIST, ValueType.SET):
        value = _as_list(value)
    elif type_name == ValueType.ZSET:
        value = [(member, float(score)) for member, score in _pairs(_as_list(value))]
    elif type_name == ValueType.HASH:
        value = dict(_pairs(_as_list(value)))
    return type_name, ttl, value


async def extract_key(client: StoreClient, db: int, key: str) -> KeyRecord | None:
    """Read one key with native commands (``TYPE``, ``PTTL``, value read).

    Returns:
        The record, or ``None`` if the key's type is not supported or the
        key no longer exists.
    """
    type_name = await client.key_type(db, key)
    if type_name not in SUPPORTED_TYPES:
        logger.debug(f"Skipping key {key!r} in database {db}: unsupported type {type_name!r}")
        return None

    ttl = await client.pttl(db, key)

    value: Any
    if type_name == ValueType.STRING:
        value = await client.get(db, key)
    elif type_name == ValueType.LIST:
        value = await client.lrange(db, key)
    elif type_name == ValueType.SET:
        value = await client.smembers(db, key)
    elif type_name == ValueType.ZSET:
        value = await client.zrange_with_scores(db, key)
    else:
        value = await client.hgetall(db, key)

    return build_record(type_name, ttl, value)


class BatchExtractor:
    """Extract ``KeyRecord`` values for batches of keys.

    Args:
        client: Store client to read from.
        use_script: When ``False``, skip the scripted path and always read
            key by key.

    Example:
        extractor = BatchExtractor(adapter)
        records = await extractor.extract(0, ["a", "b", "c"])
    """

    def __init__(self, client: StoreClient, use_script: bool = True) -> None:
        self._client = client
        self._use_script = use_script

    async def extract(self, db: int, keys: list[str]) -> dict[str, KeyRecord]:
        """Return a record for every key in ``keys`` that could be classified.

        Keys that vanished, have an unsupported type, or could not be read
        are left out; a single bad key never fails the batch.

        Raises:
            StoreConnectionError: If the connection fails.
        """
        if not keys:
            return {}

        if self._use_script:
            outcome = await run_script_batch(self._client, db, keys)
            if outcome.success:
                return self._records_from_script(db, keys, outcome.entries)
            logger.warning(
                f"Batch script failed for database {db} ({len(keys)} keys), "
                f"reading keys individually: {outcome.error}"
            )

        return await self.extract_per_key(db, keys)

    async def extract_per_key(self, db: int, keys: list[str]) -> dict[str, KeyRecord]:
        """Read every key of the batch with native commands."""
        records: dict[str, KeyRecord] = {}
        for key in keys:
            try:
                record = await extract_key(self._client, db, key)
            except StoreConnectionError:
                raise
            except Exception as e:
                logger.debug(f"Error reading key {key!r} in database {db}: {e}")
                continue
            if record is not None:
                records[key] = record
        return records

    def _records_from_script(
        self, db: int, keys: list[str], entries: dict[str, Any]
    ) -> dict[str, KeyRecord]:
        records: dict[str, KeyRecord] = {}
        for key in keys:
            if key not in entries:
                logger.debug(f"Key {key!r} in database {db} missing from script reply")
                continue
            try:
                type_name, ttl, value = unpack_script_entry(entries[key])
                record = build_record(type_name, ttl, value)
            except Exception as e:
                logger.debug(f"Error decoding key {key!r} in database {db}: {e}")
                continue
            if record is None:
                logger.debug(
                    f"Skipping key {key!r} in database {db}: unsupported type {type_name!r}"
                )
                continue
            records[key] = record
        return records
