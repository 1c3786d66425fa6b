"""Shared fixtures: an in-memory ``StoreClient`` for engine tests.

``FakeStore`` keeps typed values per logical database and emulates the
batch read script in Python, producing the same JSON the Lua script
produces (including cjson's empty-table-as-object quirk).  Set
``scripting_enabled = False`` to make every script call fail, which forces
the per-key fallback path.
"""

import json
from typing import Any

import pytest

from redis_dump.adapters.base import StoreConnectionError


class FakeScriptError(Exception):
    """Stands in for a server-side script error (e.g. scripting disabled)."""


class FakeWrongTypeError(Exception):
    """Stands in for a rejected command reply."""


class FakePipeline:
    """Queues write commands and applies them on ``execute``."""

    def __init__(self, store: "FakeStore", db: int) -> None:
        self._store = store
        self._db = db
        self._queue: list[tuple[str, tuple]] = []

    def set(self, key, value, px=None):
        self._queue.append(("set", (key, value, px)))
        return self

    def delete(self, key):
        self._queue.append(("delete", (key,)))
        return self

    def rpush(self, key, values):
        self._queue.append(("rpush", (key, list(values))))
        return self

    def sadd(self, key, members):
        self._queue.append(("sadd", (key, list(members))))
        return self

    def zadd(self, key, mapping):
        self._queue.append(("zadd", (key, dict(mapping))))
        return self

    def hset(self, key, mapping):
        self._queue.append(("hset", (key, dict(mapping))))
        return self

    def pexpire(self, key, millis):
        self._queue.append(("pexpire", (key, millis)))
        return self

    async def execute(self) -> list[Any]:
        self._store.check_connection()
        self._store.pipelines_executed += 1
        replies: list[Any] = []
        for name, args in self._queue:
            self._store.commands.append((self._db, name, args[0]))
            try:
                replies.append(getattr(self._store, f"_apply_{name}")(self._db, *args))
            except FakeWrongTypeError as e:
                replies.append(e)
        self._queue.clear()
        return replies


class FakeStore:
    """In-memory multi-database store implementing ``StoreClient``."""

    def __init__(self, databases: int = 16) -> None:
        self.databases = databases
        self.data: dict[int, dict[str, tuple[str, Any]]] = {}
        self.ttls: dict[int, dict[str, int]] = {}
        self.scripting_enabled = True
        self.duplicate_scan = False
        self.connected = True
        self.script_calls = 0
        self.pipelines_executed = 0
        self.commands: list[tuple[int, str, str]] = []
        self.closed = False

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def check_connection(self) -> None:
        if not self.connected:
            raise StoreConnectionError("Connection refused")

    def _db(self, db: int) -> dict[str, tuple[str, Any]]:
        return self.data.setdefault(db, {})

    def put(self, db: int, key: str, kind: str, value: Any, ttl: int | None = None) -> None:
        self._db(db)[key] = (kind, value)
        if ttl is not None:
            self.ttls.setdefault(db, {})[key] = ttl
        else:
            self.ttls.get(db, {}).pop(key, None)

    def value_of(self, db: int, key: str) -> Any:
        entry = self.data.get(db, {}).get(key)
        return None if entry is None else entry[1]

    def type_of(self, db: int, key: str) -> str:
        entry = self.data.get(db, {}).get(key)
        return "none" if entry is None else entry[0]

    def ttl_of(self, db: int, key: str) -> int | None:
        return self.ttls.get(db, {}).get(key)

    def keys_of(self, db: int) -> set[str]:
        return set(self.data.get(db, {}))

    # ------------------------------------------------------------------
    # StoreClient
    # ------------------------------------------------------------------

    async def scan_keys(self, db: int, pattern: str = "*"):
        self.check_connection()
        keys = list(reversed(list(self.data.get(db, {}))))
        for key in keys:
            yield key
            if self.duplicate_scan:
                yield key

    async def key_count(self, db: int) -> int:
        self.check_connection()
        return len(self.data.get(db, {}))

    async def database_count(self) -> int:
        self.check_connection()
        return self.databases

    async def flush_database(self, db: int) -> None:
        self.check_connection()
        self.commands.append((db, "flushdb", ""))
        self.data.pop(db, None)
        self.ttls.pop(db, None)

    async def eval_script(self, db, script, keys, args=()):
        self.check_connection()
        self.script_calls += 1
        if not self.scripting_enabled:
            raise FakeScriptError("ERR scripting is disabled")
        result: dict[str, Any] = {}
        for key in keys:
            kind = self.type_of(db, key)
            entry: dict[str, Any] = {"type": kind, "ttl": await self.pttl(db, key)}
            value = self.value_of(db, key)
            if kind == "string":
                entry["value"] = value
            elif kind in ("list", "set"):
                entry["value"] = list(value) or {}
            elif kind == "zset":
                flat: list[str] = []
                for member, score in self._sorted_zset(value):
                    flat.extend([member, repr(float(score))])
                entry["value"] = flat or {}
            elif kind == "hash":
                flat = []
                for field, field_value in value.items():
                    flat.extend([field, field_value])
                entry["value"] = flat or {}
            result[key] = entry
        return json.dumps(result)

    async def key_type(self, db: int, key: str) -> str:
        self.check_connection()
        return self.type_of(db, key)

    async def pttl(self, db: int, key: str) -> int:
        self.check_connection()
        if key not in self.data.get(db, {}):
            return -2
        ttl = self.ttl_of(db, key)
        return -1 if ttl is None else ttl

    async def get(self, db, key):
        self.check_connection()
        return self.value_of(db, key)

    async def lrange(self, db, key):
        self.check_connection()
        return list(self.value_of(db, key) or [])

    async def smembers(self, db, key):
        self.check_connection()
        return set(self.value_of(db, key) or ())

    async def zrange_with_scores(self, db, key):
        self.check_connection()
        return [(m, float(s)) for m, s in self._sorted_zset(self.value_of(db, key) or {})]

    async def hgetall(self, db, key):
        self.check_connection()
        return dict(self.value_of(db, key) or {})

    def pipeline(self, db: int) -> FakePipeline:
        return FakePipeline(self, db)

    async def ping(self) -> bool:
        self.check_connection()
        return True

    async def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------
    # Pipeline command semantics
    # ------------------------------------------------------------------

    @staticmethod
    def _sorted_zset(value: dict[str, float]) -> list[tuple[str, float]]:
        return sorted(value.items(), key=lambda item: (item[1], item[0]))

    def _require(self, db: int, key: str, kind: str) -> None:
        current = self.type_of(db, key)
        if current not in ("none", kind):
            raise FakeWrongTypeError(
                "WRONGTYPE Operation against a key holding the wrong kind of value"
            )

    def _apply_set(self, db, key, value, px):
        if px is not None and px <= 0:
            raise FakeWrongTypeError("ERR invalid expire time in 'set' command")
        self.put(db, key, "string", value, ttl=px)
        return True

    def _apply_delete(self, db, key):
        existed = key in self.data.get(db, {})
        self._db(db).pop(key, None)
        self.ttls.get(db, {}).pop(key, None)
        return int(existed)

    def _apply_rpush(self, db, key, values):
        self._require(db, key, "list")
        current = list(self.value_of(db, key) or [])
        current.extend(values)
        self._db(db)[key] = ("list", current)
        return len(current)

    def _apply_sadd(self, db, key, members):
        self._require(db, key, "set")
        current = set(self.value_of(db, key) or ())
        before = len(current)
        current.update(members)
        self._db(db)[key] = ("set", current)
        return len(current) - before

    def _apply_zadd(self, db, key, mapping):
        self._require(db, key, "zset")
        current = dict(self.value_of(db, key) or {})
        current.update(mapping)
        self._db(db)[key] = ("zset", current)
        return len(mapping)

    def _apply_hset(self, db, key, mapping):
        self._require(db, key, "hash")
        current = dict(self.value_of(db, key) or {})
        current.update(mapping)
        self._db(db)[key] = ("hash", current)
        return len(mapping)

    def _apply_pexpire(self, db, key, millis):
        if key not in self.data.get(db, {}):
            return 0
        self.ttls.setdefault(db, {})[key] = millis
        return 1


def populate_all_types(store: FakeStore, db: int = 0) -> None:
    """Fill ``db`` with one or more keys of every supported type."""
    store.put(db, "string1", "string", "value1")
    store.put(db, "string2", "string", "value2")
    store.put(db, "expiring-string", "string", "value-with-ttl", ttl=3_600_000)
    store.put(db, "list1", "list", ["item1", "item2", "item3"])
    store.put(db, "set1", "set", {"member1", "member2", "member3"})
    store.put(db, "zset1", "zset", {"member1": 1.0, "member2": 2.0, "member3": 3.0})
    store.put(db, "hash1", "hash", {"field1": "value1", "field2": "value2", "field3": "value3"})


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def populated_store() -> FakeStore:
    fake = FakeStore()
    populate_all_types(fake, 0)
    return fake
