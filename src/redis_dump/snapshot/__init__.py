"""Snapshot dump and restore engine.

Dumps Redis databases into a JSON snapshot file and restores them, with a
safe-by-default restore policy.

Usage:
    from redis_dump.snapshot import dump_snapshot, restore_snapshot, validate_snapshot
"""

from redis_dump.snapshot.codec import (
    DatabaseSnapshot,
    HashRecord,
    KeyRecord,
    ListRecord,
    SetRecord,
    StringRecord,
    ValueType,
    ZSetEntry,
    ZSetRecord,
    build_record,
    decode_record,
    encode_record,
)
from redis_dump.snapshot.dump import (
    DumpSummary,
    dump_database,
    dump_databases,
    dump_snapshot,
    resolve_databases,
    write_snapshot,
)
from redis_dump.snapshot.extractor import BatchExtractor, BatchScriptResult
from redis_dump.snapshot.guard import GuardDecision, GuardState, RestoreBlockedError, RestoreGuard
from redis_dump.snapshot.observer import NullObserver, ProgressObserver
from redis_dump.snapshot.restore import (
    RestoreSummary,
    SnapshotFormatError,
    read_snapshot,
    restore_snapshot,
    validate_snapshot,
)
from redis_dump.snapshot.writer import BatchWriter, WriteResult

__all__ = [
    # Codec
    "ValueType",
    "KeyRecord",
    "StringRecord",
    "ListRecord",
    "SetRecord",
    "ZSetRecord",
    "ZSetEntry",
    "HashRecord",
    "DatabaseSnapshot",
    "build_record",
    "encode_record",
    "decode_record",
    # Dump
    "BatchExtractor",
    "BatchScriptResult",
    "DumpSummary",
    "dump_database",
    "dump_databases",
    "dump_snapshot",
    "resolve_databases",
    "write_snapshot",
    # Restore
    "RestoreGuard",
    "GuardState",
    "GuardDecision",
    "RestoreBlockedError",
    "BatchWriter",
    "WriteResult",
    "RestoreSummary",
    "SnapshotFormatError",
    "read_snapshot",
    "restore_snapshot",
    "validate_snapshot",
    # Progress
    "ProgressObserver",
    "NullObserver",
]
