"""Key record models and the snapshot value codec.

A key's captured state is one of five record models, discriminated by
``type``.  The JSON form of every record is::

    {"Type": "<tag>", "Value": <shape depends on tag>, "TTL": <millis> | null}

Usage:
    from redis_dump.snapshot.codec import build_record, decode_record, encode_record

    record = build_record("list", 5000, ["a", "b"])
    raw = encode_record(record)     # {"Type": "list", "Value": ["a", "b"], "TTL": 5000}
    assert decode_record(raw) == record
"""

import math
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class ValueType(str, Enum):
    """The five value shapes a snapshot can hold."""

    STRING = "string"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    HASH = "hash"


SUPPORTED_TYPES = frozenset(t.value for t in ValueType)


def normalize_ttl(ttl: Any) -> Any:
    """Map a raw TTL reading to whole milliseconds or ``None``.

    Negative readings (``-1`` no expiry, ``-2`` key vanished) and
    non-finite values mean "no expiry".  Fractional milliseconds, as
    written by some other dump tools, are rounded.  Anything that is not a
    number is returned untouched so model validation can reject it.
    """
    if ttl is None or isinstance(ttl, bool):
        return ttl
    if isinstance(ttl, (int, float)):
        if not math.isfinite(ttl) or ttl < 0:
            return None
        return int(round(ttl))
    return ttl


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ttl: int | None = Field(default=None, alias="TTL")

    @field_validator("ttl", mode="before")
    @classmethod
    def _normalize_ttl(cls, v: Any) -> Any:
        return normalize_ttl(v)


class StringRecord(_Record):
    type: Literal["string"] = Field(default="string", alias="Type")
    value: str = Field(alias="Value")


class ListRecord(_Record):
    type: Literal["list"] = Field(default="list", alias="Type")
    value: list[str] = Field(alias="Value")


class SetRecord(_Record):
    type: Literal["set"] = Field(default="set", alias="Type")
    value: frozenset[str] = Field(alias="Value")


class ZSetEntry(BaseModel):
    """One scored member of a sorted set."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    member: str = Field(alias="Member")
    score: float = Field(alias="Score")


class ZSetRecord(_Record):
    type: Literal["zset"] = Field(default="zset", alias="Type")
    value: list[ZSetEntry] = Field(alias="Value")   # ascending score order


class HashRecord(_Record):
    type: Literal["hash"] = Field(default="hash", alias="Type")
    value: dict[str, str] = Field(alias="Value")


KeyRecord = Annotated[
    StringRecord | ListRecord | SetRecord | ZSetRecord | HashRecord,
    Field(discriminator="type"),
]

# database index -> key name -> record
DatabaseSnapshot = dict[int, dict[str, KeyRecord]]

_KEY_RECORD_ADAPTER: TypeAdapter[KeyRecord] = TypeAdapter(KeyRecord)


def encode_score(score: float) -> float | str:
    """Spell infinite scores as Redis does (``"inf"``, ``"-inf"``).

    JSON has no infinity literal; pydantic reads the strings back as floats.
    """
    if math.isinf(score):
        return "inf" if score > 0 else "-inf"
    return score


def build_record(type_name: str, ttl: Any, value: Any) -> KeyRecord | None:
    """Build a record from native store replies.

    Args:
        type_name: Type reported by the store (``TYPE`` reply).
        ttl: Raw ``PTTL`` reply in milliseconds.
        value: Native value read for that type: ``str`` for string,
            sequence of ``str`` for list and set, sequence of
            ``(member, score)`` pairs for zset, mapping for hash.

    Returns:
        The record, or ``None`` when ``type_name`` is not a supported shape.

    Raises:
        pydantic.ValidationError: If ``value`` does not fit the shape.
        TypeError / ValueError: If ``value`` cannot be unpacked at all.
    """
    if type_name == ValueType.STRING:
        return StringRecord(value=value, ttl=ttl)
    if type_name == ValueType.LIST:
        return ListRecord(value=list(value), ttl=ttl)
    if type_name == ValueType.SET:
        return SetRecord(value=frozenset(value), ttl=ttl)
    if type_name == ValueType.ZSET:
        entries = [ZSetEntry(member=member, score=score) for member, score in value]
        return ZSetRecord(value=entries, ttl=ttl)
    if type_name == ValueType.HASH:
        return HashRecord(value=dict(value), ttl=ttl)
    return None


def encode_record(record: KeyRecord) -> dict[str, Any]:
    """Encode a record into its JSON-ready snapshot form."""
    value: Any
    match record:
        case StringRecord():
            value = record.value
        case ListRecord():
            value = list(record.value)
        case SetRecord():
            value = sorted(record.value)
        case ZSetRecord():
            value = [{"Member": e.member, "Score": encode_score(e.score)} for e in record.value]
        case HashRecord():
            value = dict(record.value)
        case _:
            raise TypeError(f"Not a key record: {type(record).__name__}")
    return {"Type": record.type, "Value": value, "TTL": record.ttl}


def decode_record(raw: Any) -> KeyRecord:
    """Decode one untrusted snapshot record.

    The ``Type`` tag is matched case-insensitively.

    Raises:
        pydantic.ValidationError: If the tag is missing or unknown, or the
            value does not match the tagged shape.
    """
    if isinstance(raw, dict) and isinstance(raw.get("Type"), str):
        raw = {**raw, "Type": raw["Type"].lower()}
    return _KEY_RECORD_ADAPTER.validate_python(raw)


def encode_snapshot(snapshot: DatabaseSnapshot) -> dict[str, dict[str, dict[str, Any]]]:
    """Encode a whole snapshot into the JSON document shape."""
    return {
        str(db): {key: encode_record(record) for key, record in records.items()}
        for db, records in snapshot.items()
    }
