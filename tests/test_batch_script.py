"""Tests running ``BATCH_READ_SCRIPT`` on an in-process Lua-capable server.

``AsyncRedisAdapter`` is pointed at fakeredis (with its Lua runtime), so the
real script text, its cjson encoding and its string-formatted zset scores
go through the same decoding as on a live server.  Redis never stores an
empty collection, so the empty-table reply shapes are covered by the
``FakeStore`` tests in ``test_extractor.py`` instead.
"""

import json
from unittest.mock import patch

import fakeredis
import pytest

from redis_dump.adapters.redis_adapter import AsyncRedisAdapter
from redis_dump.snapshot.dump import dump_snapshot
from redis_dump.snapshot.enumerator import list_keys
from redis_dump.snapshot.extractor import BatchExtractor, run_script_batch
from redis_dump.snapshot.restore import restore_snapshot

FROM_URL = "redis_dump.adapters.redis_adapter.aioredis.Redis.from_url"
TTL_MS = 600_000


@pytest.fixture
async def adapter():
    server = fakeredis.FakeServer()

    def from_url(url, db=0, **kwargs):
        return fakeredis.FakeAsyncRedis(server=server, db=db, decode_responses=True)

    with patch(FROM_URL, side_effect=from_url):
        redis_adapter = AsyncRedisAdapter("redis://fake:6379")
        yield redis_adapter
        await redis_adapter.close()


async def _seed(adapter: AsyncRedisAdapter, db: int = 0) -> None:
    client = adapter._client(db)
    await client.set("s", "hello world")
    await client.set("expiring", "v", px=TTL_MS)
    await client.set("blank", "")
    await client.rpush("l", "b", "a", "b")
    await client.sadd("st", "x", "y", "z")
    await client.zadd("z", {"low": -1.5, "mid": 2, "top": float("inf"), "bottom": float("-inf")})
    await client.hset("h", mapping={"f1": "v1", "f2": ""})
    await client.pexpire("h", TTL_MS)


def _without_ttl(records):
    return {key: record.model_copy(update={"ttl": None}) for key, record in records.items()}


# ------------------------------------------------------------------
# Script vs per-key reads
# ------------------------------------------------------------------


class TestBatchScriptOnServer:
    """The Lua script and the native per-key reads agree."""

    async def test_script_runs(self, adapter):
        await _seed(adapter)
        outcome = await run_script_batch(adapter, 0, ["s", "z", "missing"])
        assert outcome.success, outcome.error
        assert outcome.entries["s"]["type"] == "string"
        assert outcome.entries["missing"]["type"] == "none"

    async def test_script_matches_per_key_reads(self, adapter):
        await _seed(adapter)
        keys = await list_keys(adapter, 0)

        via_script = await BatchExtractor(adapter).extract(0, keys)
        via_fallback = await BatchExtractor(adapter, use_script=False).extract(0, keys)

        assert sorted(via_script) == ["blank", "expiring", "h", "l", "s", "st", "z"]
        # TTLs are read at slightly different moments by the two paths
        assert _without_ttl(via_script) == _without_ttl(via_fallback)
        for records in (via_script, via_fallback):
            assert 0 < records["expiring"].ttl <= TTL_MS
            assert 0 < records["h"].ttl <= TTL_MS
            assert records["s"].ttl is None

    async def test_infinite_scores_through_script(self, adapter):
        await _seed(adapter)
        records = await BatchExtractor(adapter).extract(0, ["z"])
        scores = {e.member: e.score for e in records["z"].value}
        assert scores == {"bottom": float("-inf"), "low": -1.5, "mid": 2.0, "top": float("inf")}
        assert [e.member for e in records["z"].value] == ["bottom", "low", "mid", "top"]

    async def test_missing_keys_omitted(self, adapter):
        await _seed(adapter)
        assert await BatchExtractor(adapter).extract(0, ["gone", "other-gone"]) == {}


# ------------------------------------------------------------------
# Dump -> restore
# ------------------------------------------------------------------


class TestRoundTripOnServer:
    async def test_dump_is_strict_json_and_restores(self, adapter, tmp_path):
        await _seed(adapter)
        path = tmp_path / "dump.json"
        await dump_snapshot(adapter, path, databases=[0])

        def reject(constant):
            raise ValueError(f"non-standard JSON constant {constant}")

        document = json.loads(path.read_text(encoding="utf-8"), parse_constant=reject)
        scores = {e["Member"]: e["Score"] for e in document["0"]["z"]["Value"]}
        assert scores["top"] == "inf"
        assert scores["bottom"] == "-inf"

        await restore_snapshot(adapter, path, flush=True, force=True)
        client = adapter._client(0)
        assert await client.zscore("z", "top") == float("inf")
        assert await client.zscore("z", "bottom") == float("-inf")
        assert await client.lrange("l", 0, -1) == ["b", "a", "b"]
        assert await client.hgetall("h") == {"f1": "v1", "f2": ""}
        assert 0 < await client.pttl("h") <= TTL_MS
        assert await client.pttl("s") == -1
