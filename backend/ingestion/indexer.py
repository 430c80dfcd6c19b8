"""Incremental scan passes from the stored checkpoint to the chain head."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from app.domain import RawEvent
from app.models import EventType

from .retry import RetryExecutor
from .scanner import RangeScanner
from .service import EventStore
from .single_flight import SingleFlight


class LogSource(Protocol):
    def get_block_number(self) -> int:
        ...

    def get_logs(
        self,
        event_type: EventType,
        from_block: int,
        to_block: int,
        *,
        indexed_address: str | None = None,
    ) -> list[RawEvent]:
        ...


@dataclass(slots=True)
class PassSummary:
    namespace: str
    status: str
    from_block: int | None = None
    to_block: int | None = None
    fetched_events: int = 0
    new_events: int = 0
    failed_ranges: list[tuple[int, int]] = field(default_factory=list)
    checkpoint_block: int | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "namespace": self.namespace,
            "status": self.status,
            "from_block": self.from_block,
            "to_block": self.to_block,
            "fetched_events": self.fetched_events,
            "new_events": self.new_events,
            "failed_ranges": [list(item) for item in self.failed_ranges],
            "checkpoint_block": self.checkpoint_block,
        }


class EventIndexer:
    """Run scan-and-save passes, one at a time per namespace."""

    def __init__(
        self,
        source: LogSource,
        store: EventStore,
        scanner: RangeScanner,
        executor: RetryExecutor,
    ) -> None:
        self.source = source
        self.store = store
        self.scanner = scanner
        self.executor = executor
        self._flights = SingleFlight()

    def sync(
        self,
        namespace: str,
        event_type: EventType,
        *,
        indexed_address: str | None = None,
    ) -> PassSummary:
        with self._flights.claim(namespace) as acquired:
            if not acquired:
                logger.info("Scan for {} already in flight; reusing cached events", namespace)
                return PassSummary(namespace=namespace, status="coalesced")
            return self._run_pass(namespace, event_type, indexed_address)

    def _run_pass(
        self,
        namespace: str,
        event_type: EventType,
        indexed_address: str | None,
    ) -> PassSummary:
        cached = self.store.checkpoint(namespace)
        latest = int(
            self.executor.execute(self.source.get_block_number, description="eth_blockNumber")
        )
        from_block = cached.next_block
        if from_block > latest:
            return PassSummary(
                namespace=namespace,
                status="up_to_date",
                checkpoint_block=cached.checkpoint_block if cached.has_checkpoint else None,
            )

        result = self.scanner.scan(
            from_block,
            latest,
            lambda start, end: self.source.get_logs(
                event_type, start, end, indexed_address=indexed_address
            ),
        )
        inserted = self.store.save(
            namespace, result.events, latest, complete=result.complete
        )
        if result.complete:
            checkpoint = latest
        else:
            checkpoint = cached.checkpoint_block if cached.has_checkpoint else None
        return PassSummary(
            namespace=namespace,
            status="completed" if result.complete else "partial",
            from_block=from_block,
            to_block=latest,
            fetched_events=len(result.events),
            new_events=inserted,
            failed_ranges=list(result.failed_ranges),
            checkpoint_block=checkpoint,
        )

    def events(self, namespace: str) -> list[RawEvent]:
        return self.store.load(namespace).events


__all__ = ["EventIndexer", "LogSource", "PassSummary"]
