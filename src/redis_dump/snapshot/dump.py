"""Snapshot assembly: dump databases into a JSON snapshot file.

Databases are dumped one at a time.  Within a database, keys are listed
once, sorted, and extracted in fixed-size batches.  The whole snapshot is
built in memory and written once, through a temporary file that is moved
into place, so a failed run never leaves a partial snapshot behind.

Usage:
    from redis_dump.snapshot.dump import dump_snapshot

    summary = await dump_snapshot(adapter, "redis-dump.json", databases=[0, 2])
    print(summary.total_keys)
"""

import json
import logging
import os
import stat
import tempfile
from pathlib import Path

from pydantic import BaseModel, Field

from redis_dump.adapters.base import StoreClient
from redis_dump.snapshot.codec import DatabaseSnapshot, KeyRecord, encode_snapshot
from redis_dump.snapshot.enumerator import iter_batches, list_keys
from redis_dump.snapshot.extractor import BatchExtractor
from redis_dump.snapshot.observer import NullObserver, ProgressObserver

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DEFAULT_DATABASE_COUNT = 16


class DumpSummary(BaseModel):
    """Result of ``dump_snapshot()``."""

    output_path: str
    key_counts: dict[int, int] = Field(default_factory=dict)   # db -> keys captured

    @property
    def total_keys(self) -> int:
        return sum(self.key_counts.values())


async def resolve_databases(
    client: StoreClient,
    databases: list[int] | None = None,
    default_count: int = DEFAULT_DATABASE_COUNT,
) -> list[int]:
    """Return the database indices a run should cover.

    An explicit selection is returned deduplicated and sorted.  Otherwise
    every database the server reports is covered, or ``default_count``
    databases when the server reports none.
    """
    if databases:
        return sorted(set(databases))

    count = await client.database_count()
    if count <= 0:
        logger.info(
            f"Server did not report a database count, assuming {default_count}"
        )
        count = default_count
    return list(range(count))


async def dump_database(
    client: StoreClient,
    db: int,
    batch_size: int = DEFAULT_BATCH_SIZE,
    observer: ProgressObserver | None = None,
    extractor: BatchExtractor | None = None,
) -> dict[str, KeyRecord]:
    """Capture every supported key of one database.

    Raises:
        StoreConnectionError: If the connection fails.
    """
    observer = observer or NullObserver()
    extractor = extractor or BatchExtractor(client)

    keys = await list_keys(client, db)
    logger.debug(f"Database {db}: found {len(keys)} keys")

    records: dict[str, KeyRecord] = {}
    for batch_index, batch in enumerate(iter_batches(keys, batch_size)):
        observer.on_batch_start(db, batch_index, len(batch))
        records.update(await extractor.extract(db, batch))
        for key in batch:
            observer.on_key_processed(db, key)

    skipped = len(keys) - len(records)
    if skipped:
        logger.debug(f"Database {db}: skipped {skipped} keys")
    observer.on_database_done(db, len(records))
    return records


async def dump_databases(
    client: StoreClient,
    databases: list[int],
    batch_size: int = DEFAULT_BATCH_SIZE,
    observer: ProgressObserver | None = None,
    use_script: bool = True,
) -> DatabaseSnapshot:
    """Capture the given databases, in order, into an in-memory snapshot."""
    extractor = BatchExtractor(client, use_script=use_script)
    snapshot: DatabaseSnapshot = {}
    for db in databases:
        snapshot[db] = await dump_database(
            client, db, batch_size=batch_size, observer=observer, extractor=extractor
        )
    return snapshot


def _snapshot_file_mode(path: Path) -> int:
    """Mode for a new snapshot: the replaced file's, else 0666 minus umask."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        pass
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_snapshot(snapshot: DatabaseSnapshot, output_path: str | Path) -> str:
    """Serialize a snapshot to a JSON file, replacing it atomically.

    The file gets the permissions of the file it replaces, or the usual
    umask-derived permissions when it is new (the temporary file itself is
    created owner-only).

    Returns:
        The output path as a string.
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    document = encode_snapshot(snapshot)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False, allow_nan=False)
        os.chmod(tmp_name, _snapshot_file_mode(path))
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    return str(path)


async def dump_snapshot(
    client: StoreClient,
    output_path: str | Path,
    databases: list[int] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    default_database_count: int = DEFAULT_DATABASE_COUNT,
    observer: ProgressObserver | None = None,
    use_script: bool = True,
) -> DumpSummary:
    """Dump databases from the store into a snapshot file.

    Args:
        client: Store client implementing ``StoreClient``.
        output_path: Destination JSON file.
        databases: Database indices to dump.  Empty or ``None`` dumps every
            database the server reports.
        batch_size: Keys per extraction round trip.
        default_database_count: Databases assumed when the server does not
            report a count.
        observer: Optional progress observer.
        use_script: Set ``False`` to bypass the scripted batch read.

    Returns:
        ``DumpSummary`` with the written path and per-database key counts.

    Raises:
        StoreConnectionError: If the connection fails; no file is written.

    Example:
        summary = await dump_snapshot(adapter, "backup.json", databases=[0])
    """
    selected = await resolve_databases(client, databases, default_database_count)
    snapshot = await dump_databases(
        client, selected, batch_size=batch_size, observer=observer, use_script=use_script
    )
    path = write_snapshot(snapshot, output_path)
    return DumpSummary(
        output_path=path,
        key_counts={db: len(records) for db, records in snapshot.items()},
    )
