"""Restore safety guard.

Decides, per target database, whether a restore may write to it:

1. ``flush`` (which requires ``force``, enforced by ``RestoreSettings``):
   wipe the database, then proceed.
2. ``force``: proceed; existing keys are overwritten key by key.
3. Otherwise proceed only if the database is empty.

Usage:
    guard = RestoreGuard(adapter, flush=False, force=False)
    decision = await guard.evaluate(0)
    decision.raise_if_blocked()
"""

import logging
from enum import Enum

from pydantic import BaseModel

from redis_dump.adapters.base import StoreClient
from redis_dump.config.models import FLUSH_WITHOUT_FORCE_MESSAGE

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    IDLE = "idle"
    EVALUATE = "evaluate"
    PROCEED = "proceed"
    BLOCKED = "blocked"


class RestoreBlockedError(Exception):
    """Raised when a restore would write into a non-empty database."""

    def __init__(self, db: int, key_count: int) -> None:
        self.db = db
        self.key_count = key_count
        super().__init__(
            f"Database {db} is not empty ({key_count} existing keys). "
            f"Use --force to overwrite existing keys, or --flush --force "
            f"to clear the database before restoring."
        )


class GuardDecision(BaseModel):
    """Outcome of evaluating one target database."""

    db: int
    state: GuardState
    flushed: bool = False
    existing_keys: int | None = None   # only counted when neither flag is set

    @property
    def proceed(self) -> bool:
        return self.state == GuardState.PROCEED

    def raise_if_blocked(self) -> None:
        """Raise ``RestoreBlockedError`` if the decision is ``BLOCKED``."""
        if self.state == GuardState.BLOCKED:
            raise RestoreBlockedError(self.db, self.existing_keys or 0)


class RestoreGuard:
    """Per-database gate in front of the restore writer.

    Args:
        client: Store client for the restore target.
        flush: Clear each target database before writing.
        force: Allow writing into a non-empty database.

    Raises:
        ValueError: If ``flush`` is set without ``force``.
    """

    def __init__(self, client: StoreClient, flush: bool = False, force: bool = False) -> None:
        if flush and not force:
            raise ValueError(FLUSH_WITHOUT_FORCE_MESSAGE)
        self._client = client
        self._flush = flush
        self._force = force
        self.state = GuardState.IDLE

    async def evaluate(self, db: int) -> GuardDecision:
        """Evaluate database ``db`` and, when flushing, clear it.

        Raises:
            StoreConnectionError: If the connection fails.
        """
        self.state = GuardState.EVALUATE

        if self._flush:
            logger.debug(f"Flushing database {db}")
            await self._client.flush_database(db)
            decision = GuardDecision(db=db, state=GuardState.PROCEED, flushed=True)
        elif self._force:
            decision = GuardDecision(db=db, state=GuardState.PROCEED)
        else:
            existing = await self._client.key_count(db)
            state = GuardState.PROCEED if existing == 0 else GuardState.BLOCKED
            decision = GuardDecision(db=db, state=state, existing_keys=existing)

        self.state = decision.state
        return decision
