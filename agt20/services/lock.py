"""
Single-writer lease stored on the indexer cursor row.
"""

import socket
import time
import uuid
from datetime import timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agt20.config import settings
from agt20.models.indexer_state import IndexerState, CURSOR_STATE_ID
from agt20.utils.exceptions import IndexerBusyError
from agt20.utils.timestamps import utcnow


def default_owner() -> str:
    return f"{socket.gethostname()}:{uuid.uuid4().hex[:12]}"


def get_or_create_state(db: Session, state_id: str) -> IndexerState:
    state = db.get(IndexerState, state_id)
    if state is not None:
        return state

    db.add(IndexerState(id=state_id))
    try:
        db.commit()
    except IntegrityError:
        # created concurrently by another process
        db.rollback()
    return db.get(IndexerState, state_id)


class IndexerLock:
    """Advisory lock: run, backfill and webhook indexing never overlap.

    Acquisition is a conditional UPDATE on the cursor row, so it works the same
    on every backend. The lease expires after ``ttl_seconds`` so a killed
    process cannot block indexing forever; long replays call ``refresh_if_due()``
    which renews the lease once half of it has elapsed.
    """

    def __init__(
        self,
        db_session: Session,
        owner: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        state_id: str = CURSOR_STATE_ID,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db_session
        self.owner = owner or default_owner()
        self.ttl = timedelta(seconds=ttl_seconds or settings.LOCK_TTL_SECONDS)
        self.state_id = state_id
        self.held = False
        self.renewed_at = 0.0
        self._clock = clock
        self.logger = structlog.get_logger()

    def acquire(self) -> None:
        get_or_create_state(self.db, self.state_id)
        now = utcnow()
        stmt = (
            update(IndexerState)
            .where(IndexerState.id == self.state_id)
            .where(
                or_(
                    IndexerState.lock_owner.is_(None),
                    IndexerState.locked_until.is_(None),
                    IndexerState.locked_until < now,
                    IndexerState.lock_owner == self.owner,
                )
            )
            .values(lock_owner=self.owner, locked_until=now + self.ttl)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()

        if result.rowcount != 1:
            state = self.db.get(IndexerState, self.state_id)
            self.db.refresh(state)
            raise IndexerBusyError(
                f"Indexer is locked by {state.lock_owner} until {state.locked_until.isoformat() if state.locked_until else '?'}"
            )

        self.held = True
        self.renewed_at = self._clock()
        self.logger.debug("Indexer lock acquired", owner=self.owner)

    def refresh(self) -> None:
        if not self.held:
            return
        stmt = (
            update(IndexerState)
            .where(IndexerState.id == self.state_id, IndexerState.lock_owner == self.owner)
            .values(locked_until=utcnow() + self.ttl)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        if result.rowcount != 1:
            self.held = False
            raise IndexerBusyError(f"Indexer lock lost by {self.owner}")
        self.renewed_at = self._clock()

    def refresh_if_due(self) -> None:
        if self.held and self._clock() - self.renewed_at >= self.ttl.total_seconds() / 2:
            self.refresh()

    def release(self) -> None:
        if not self.held:
            return
        stmt = (
            update(IndexerState)
            .where(IndexerState.id == self.state_id, IndexerState.lock_owner == self.owner)
            .values(lock_owner=None, locked_until=None)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self.db.commit()
        self.held = False
        self.logger.debug("Indexer lock released", owner=self.owner)

    def __enter__(self) -> "IndexerLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.db.rollback()
        self.release()
