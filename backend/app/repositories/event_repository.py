"""Checkpoint, event log, and derived snapshot persistence."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.domain import RawEvent
from app.models import DerivedSnapshot, IndexedEvent, ScanCheckpoint, utcnow

from .upsert import insert_for, insert_ignoring_conflicts

INSERT_CHUNK_SIZE = 500


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class EventRepository:
    """Encapsulate checkpoint and raw event persistence for scan namespaces."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Checkpoints

    def get_checkpoint(self, namespace: str) -> int | None:
        record = self._session.get(ScanCheckpoint, namespace)
        return None if record is None else int(record.last_scanned_block)

    def advance_checkpoint(self, namespace: str, block: int) -> bool:
        """Move the checkpoint forward; never moves it backwards.

        The comparison runs inside the UPDATE statement; a checkpoint committed
        by another session is never lowered.
        """

        created = insert_ignoring_conflicts(
            self._session,
            ScanCheckpoint,
            [{"namespace": namespace, "last_scanned_block": block, "updated_at": utcnow()}],
        )
        if created:
            return True
        result = self._session.execute(
            update(ScanCheckpoint)
            .where(
                ScanCheckpoint.namespace == namespace,
                ScanCheckpoint.last_scanned_block < block,
            )
            .values(last_scanned_block=block, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Events

    def list_events(self, namespace: str) -> list[RawEvent]:
        rows = self._session.execute(
            select(IndexedEvent)
            .where(IndexedEvent.namespace == namespace)
            .order_by(IndexedEvent.block_number, IndexedEvent.log_index)
        ).scalars()
        return [
            RawEvent(
                event_type=row.event_type,
                block_number=int(row.block_number),
                transaction_hash=row.transaction_hash,
                log_index=int(row.log_index),
                args=dict(row.args or {}),
            )
            for row in rows
        ]

    def add_events(self, namespace: str, events: Iterable[RawEvent]) -> int:
        """Insert events not yet stored under ``namespace``; returns the number inserted.

        Rows another writer committed first are skipped by the unique
        ``(namespace, transaction_hash, log_index)`` constraint.
        """

        seen: set[tuple[str, int]] = set()
        rows: list[dict[str, Any]] = []
        observed_at = utcnow()
        for event in events:
            if event.key in seen:
                continue
            seen.add(event.key)
            rows.append(
                {
                    "namespace": namespace,
                    "event_type": event.event_type,
                    "block_number": event.block_number,
                    "transaction_hash": event.transaction_hash.lower(),
                    "log_index": event.log_index,
                    "args": dict(event.args),
                    "observed_at": observed_at,
                }
            )

        inserted = 0
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            inserted += insert_ignoring_conflicts(
                self._session, IndexedEvent, rows[start : start + INSERT_CHUNK_SIZE]
            )
        return inserted

    # ------------------------------------------------------------------
    # Derived snapshots

    def get_snapshot(self, key: str) -> tuple[dict[str, Any], datetime] | None:
        record = self._session.get(DerivedSnapshot, key)
        if record is None:
            return None
        return dict(record.payload), _as_utc(record.stored_at)

    def put_snapshot(self, key: str, payload: dict[str, Any], *, stored_at: datetime | None = None) -> None:
        stmt = insert_for(self._session, DerivedSnapshot).values(
            key=key, payload=payload, stored_at=stored_at or utcnow()
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"payload": stmt.excluded.payload, "stored_at": stmt.excluded.stored_at},
        )
        self._session.execute(stmt)


__all__ = ["EventRepository"]
