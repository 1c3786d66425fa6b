"""Restore snapshot files into a store, and validate them offline.

Snapshot files are read whole.  Selected databases are restored one at a
time: the ``RestoreGuard`` decides whether the target may be written (and
flushes it when asked), then ``BatchWriter`` rebuilds the keys.

Usage:
    from redis_dump.snapshot.restore import restore_snapshot, validate_snapshot

    # Restore into empty databases only (default)
    summary = await restore_snapshot(adapter, "redis-dump.json")

    # Overwrite conflicting keys in database 2
    summary = await restore_snapshot(adapter, "redis-dump.json", databases=[2], force=True)

    # Validate (sync -- local file read only)
    report = validate_snapshot("redis-dump.json")
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from redis_dump.adapters.base import StoreClient
from redis_dump.snapshot.codec import decode_record
from redis_dump.snapshot.guard import RestoreGuard
from redis_dump.snapshot.observer import ProgressObserver
from redis_dump.snapshot.writer import BatchWriter, WriteResult

logger = logging.getLogger(__name__)


class SnapshotFormatError(ValueError):
    """Raised when a snapshot file is not a usable snapshot document."""

    pass


class RestoreSummary(BaseModel):
    """Result of ``restore_snapshot()``."""

    input_path: str
    results: dict[int, WriteResult] = Field(default_factory=dict)
    missing_databases: list[int] = Field(default_factory=list)   # requested, not in file

    @property
    def total_restored(self) -> int:
        return sum(r.restored for r in self.results.values())

    @property
    def total_skipped(self) -> int:
        return sum(r.skipped for r in self.results.values())

    @property
    def total_failed(self) -> int:
        return sum(len(r.failed_keys) for r in self.results.values())


def _parse_database_index(raw: str) -> int:
    try:
        db = int(raw)
    except ValueError:
        raise SnapshotFormatError(f"Invalid database index: {raw!r}") from None
    if db < 0:
        raise SnapshotFormatError(f"Invalid database index: {raw!r}")
    return db


def _load_document(input_path: str | Path) -> Any:
    path = Path(input_path)
    if not path.exists():
        raise FileNotFoundError(f"Snapshot file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise SnapshotFormatError(f"Invalid JSON in {path}: {e}") from e


def read_snapshot(input_path: str | Path) -> dict[int, dict[str, Any]]:
    """Read a snapshot file into ``{db: {key: raw record}}``.

    Records are returned undecoded; each one is decoded (and skipped if
    invalid) at write time.

    Raises:
        FileNotFoundError: If the file does not exist.
        SnapshotFormatError: If the file is not JSON, holds no databases,
            or has an invalid database index or database entry.
    """
    document = _load_document(input_path)
    if not isinstance(document, dict) or not document:
        raise SnapshotFormatError(
            f"No data found in {input_path} or invalid format"
        )

    data: dict[int, dict[str, Any]] = {}
    for raw_db, records in document.items():
        db = _parse_database_index(raw_db)
        if not isinstance(records, dict):
            raise SnapshotFormatError(
                f"Database {db} entry is a {type(records).__name__}, expected an object"
            )
        data[db] = records
    return data


async def restore_snapshot(
    client: StoreClient,
    input_path: str | Path,
    databases: list[int] | None = None,
    flush: bool = False,
    force: bool = False,
    batch_size: int = 100,
    observer: ProgressObserver | None = None,
) -> RestoreSummary:
    """Restore databases from a snapshot file.

    Args:
        client: Store client implementing ``StoreClient``.
        input_path: Snapshot JSON file.
        databases: Database indices to restore.  Empty or ``None`` restores
            every database in the file.
        flush: Clear each target database first.  Requires ``force``.
        force: Allow restoring into non-empty databases, overwriting
            conflicting keys.
        batch_size: Keys per write pipeline.
        observer: Optional progress observer.

    Returns:
        ``RestoreSummary`` with per-database write results.

    Raises:
        ValueError: If ``flush`` is set without ``force``.
        FileNotFoundError / SnapshotFormatError: If the file is unusable.
        RestoreBlockedError: If a target database is not empty and neither
            ``force`` nor ``flush`` is set.  Databases restored before it
            keep their data.
        StoreConnectionError: If the connection fails.

    Example:
        summary = await restore_snapshot(adapter, "backup.json", flush=True, force=True)
        print(summary.total_restored)
    """
    guard = RestoreGuard(client, flush=flush, force=force)
    data = read_snapshot(input_path)

    summary = RestoreSummary(input_path=str(input_path))
    selected = sorted(data)
    if databases:
        requested = set(databases)
        selected = [db for db in selected if db in requested]
        summary.missing_databases = sorted(requested - set(data))
        for db in summary.missing_databases:
            logger.warning(f"Database {db} is not in {input_path}, nothing to restore")

    writer = BatchWriter(client, batch_size=batch_size, observer=observer)
    for db in selected:
        decision = await guard.evaluate(db)
        decision.raise_if_blocked()
        logger.debug(f"Restoring {len(data[db])} keys to database {db}")
        summary.results[db] = await writer.write_database(db, data[db])

    return summary


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def validate_snapshot(input_path: str | Path) -> dict:
    """Validate snapshot file format and records.

    This function is **sync** -- it only reads a local JSON file with no
    store I/O.

    Returns:
        Dict with ``valid`` (bool), ``errors`` (list[str]), ``warnings``
        (list[str]) and ``key_counts`` (dict[int, int], decodable keys per
        database).

    Example:
        report = validate_snapshot("redis-dump.json")
        if report["errors"]:
            raise ValueError("Snapshot is invalid")
    """
    errors: list[str] = []
    warnings: list[str] = []
    key_counts: dict[int, int] = {}

    try:
        data = read_snapshot(input_path)
    except (FileNotFoundError, SnapshotFormatError) as e:
        errors.append(str(e))
        return {"valid": False, "errors": errors, "warnings": warnings, "key_counts": key_counts}

    for db in sorted(data):
        records = data[db]
        if not records:
            warnings.append(f"Database {db} has no keys")
        valid_keys = 0
        for key, raw in records.items():
            try:
                decode_record(raw)
            except ValidationError as e:
                errors.append(f"Database {db} key {key!r}: {_describe(e)}")
            else:
                valid_keys += 1
        key_counts[db] = valid_keys

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "key_counts": key_counts,
    }
