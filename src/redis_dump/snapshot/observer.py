"""Progress observer hooks for dump and restore runs.

The engine reports progress through a ``ProgressObserver`` passed in by the
caller.  Hooks are called synchronously and must not raise; they never
influence control flow.

Usage:
    class Printer:
        def on_batch_start(self, db, batch_index, batch_size): ...
        def on_key_processed(self, db, key): ...
        def on_database_done(self, db, key_count): ...

    await dump_databases(adapter, [0, 1], observer=Printer())
"""

from typing import Protocol


class ProgressObserver(Protocol):
    """Receives progress events from the dump/restore engine."""

    def on_batch_start(self, db: int, batch_index: int, batch_size: int) -> None:
        """A batch of ``batch_size`` keys of database ``db`` is starting."""
        ...

    def on_key_processed(self, db: int, key: str) -> None:
        """One key was extracted or queued for writing (or skipped)."""
        ...

    def on_database_done(self, db: int, key_count: int) -> None:
        """Database ``db`` finished with ``key_count`` keys captured/restored."""
        ...


class NullObserver:
    """Observer that ignores every event."""

    def on_batch_start(self, db: int, batch_index: int, batch_size: int) -> None:
        pass

    def on_key_processed(self, db: int, key: str) -> None:
        pass

    def on_database_done(self, db: int, key_count: int) -> None:
        pass
