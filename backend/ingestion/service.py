from __future__ import annotations

import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from app.domain import RawEvent
from app.repositories import EventRepository


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass(slots=True)
class CachedEvents:
    namespace: str
    checkpoint_block: int
    has_checkpoint: bool
    events: list[RawEvent] = field(default_factory=list)

    @property
    def next_block(self) -> int:
        """First block the next scan pass must cover."""

        return self.checkpoint_block + 1 if self.has_checkpoint else self.checkpoint_block


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventStore:
    """Durable per-namespace event log with checkpoints and TTL-bound snapshots.

    Event merges are set unions keyed by ``(transaction_hash, log_index)``, so
    saving the same events twice is a no-op. Writes are serialized per
    namespace; reads need no lock because stored state is only ever appended
    to or moved forward.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        deployment_block: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.deployment_block = deployment_block
        self._clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, namespace: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(namespace)
            if lock is None:
                lock = self._locks[namespace] = threading.Lock()
            return lock

    def _cached(self, namespace: str, checkpoint: int | None, events: list[RawEvent]) -> CachedEvents:
        if checkpoint is None:
            return CachedEvents(
                namespace=namespace,
                checkpoint_block=self.deployment_block,
                has_checkpoint=False,
                events=events,
            )
        return CachedEvents(
            namespace=namespace,
            checkpoint_block=checkpoint,
            has_checkpoint=True,
            events=events,
        )

    def checkpoint(self, namespace: str) -> CachedEvents:
        """Checkpoint state only; ``events`` is left empty."""

        with session_scope(self._session_factory) as session:
            checkpoint = EventRepository(session).get_checkpoint(namespace)
        return self._cached(namespace, checkpoint, [])

    def load(self, namespace: str) -> CachedEvents:
        with session_scope(self._session_factory) as session:
            repo = EventRepository(session)
            checkpoint = repo.get_checkpoint(namespace)
            events = repo.list_events(namespace)
        return self._cached(namespace, checkpoint, events)

    def save(
        self,
        namespace: str,
        events: Sequence[RawEvent],
        checkpoint_block: int,
        *,
        complete: bool,
    ) -> int:
        """Merge ``events`` and advance the checkpoint when the pass was complete.

        ``complete`` asserts that the pass producing ``events`` covered every
        block up to and including ``checkpoint_block`` without skipping any
        sub-range. Incomplete passes still contribute their events.
        """

        with self._lock_for(namespace):
            with session_scope(self._session_factory) as session:
                repo = EventRepository(session)
                inserted = repo.add_events(namespace, events)
                advanced = False
                if complete:
                    advanced = repo.advance_checkpoint(namespace, checkpoint_block)
        if complete and advanced:
            logger.info(
                "Namespace {} stored {} new events; checkpoint -> {}",
                namespace,
                inserted,
                checkpoint_block,
            )
        elif not complete:
            logger.warning(
                "Namespace {} stored {} new events; checkpoint held back after incomplete scan",
                namespace,
                inserted,
            )
        return inserted

    # ------------------------------------------------------------------
    # Derived snapshots

    def get_snapshot(
        self, key: str, *, ttl_seconds: float, allow_stale: bool = False
    ) -> dict[str, Any] | None:
        with session_scope(self._session_factory) as session:
            found = EventRepository(session).get_snapshot(key)
        if found is None:
            return None
        payload, stored_at = found
        age = (self._clock() - stored_at).total_seconds()
        if age > ttl_seconds and not allow_stale:
            return None
        return payload

    def put_snapshot(self, key: str, payload: dict[str, Any]) -> None:
        with self._lock_for(f"snapshot:{key}"):
            with session_scope(self._session_factory) as session:
                EventRepository(session).put_snapshot(key, payload, stored_at=self._clock())


__all__ = ["CachedEvents", "EventStore", "session_scope"]
