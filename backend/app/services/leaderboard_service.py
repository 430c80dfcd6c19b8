"""Top winners by claimed winnings, cached as a TTL-bound snapshot."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from loguru import logger

from app import schemas
from app.domain import TokenInfo
from app.models import EventType
from ingestion.errors import UpstreamError
from ingestion.indexer import EventIndexer
from ingestion.normalize import normalize_claims, normalize_purchases
from ingestion.retry import RetryExecutor
from ingestion.service import EventStore

from .aggregation import aggregate_winnings, count_votes
from .identity_service import IdentityResolver
from .views import build_leaderboard, rank_winnings


class TokenSource(Protocol):
    def token_info(self, executor: RetryExecutor) -> TokenInfo:
        ...


class LeaderboardService:
    """Build the leaderboard from cached and freshly scanned claim and purchase events.

    A fresh snapshot is served without touching upstream. When a rebuild
    fails with exhausted retries, the last snapshot is served even if it has
    expired; the error surfaces only when no snapshot was ever stored.
    """

    def __init__(
        self,
        indexer: EventIndexer,
        token_source: TokenSource,
        executor: RetryExecutor,
        store: EventStore,
        identities: IdentityResolver,
        *,
        namespace: str,
        purchases_namespace: str,
        snapshot_key: str,
        ttl_seconds: float = 300.0,
        size: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._indexer = indexer
        self._token_source = token_source
        self._executor = executor
        self._store = store
        self._identities = identities
        self.namespace = namespace
        self.purchases_namespace = purchases_namespace
        self.snapshot_key = snapshot_key
        self.ttl_seconds = ttl_seconds
        self.size = size
        self._clock = clock

    def get_leaderboard(self) -> schemas.Leaderboard:
        cached = self._store.get_snapshot(self.snapshot_key, ttl_seconds=self.ttl_seconds)
        if cached is not None:
            return schemas.Leaderboard.model_validate(cached)

        try:
            return self.refresh()
        except UpstreamError as exc:
            stale = self._store.get_snapshot(
                self.snapshot_key, ttl_seconds=self.ttl_seconds, allow_stale=True
            )
            if stale is None:
                raise
            logger.warning("Serving stale leaderboard after failed refresh: {}", exc)
            return schemas.Leaderboard.model_validate(stale)

    def refresh(self) -> schemas.Leaderboard:
        claims_scan = self._indexer.sync(self.namespace, EventType.CLAIMED)
        purchases_scan = self._indexer.sync(self.purchases_namespace, EventType.SHARES_PURCHASED)
        logger.info(
            "Leaderboard scans {}/{}: {} new claim events, {} new purchase events",
            claims_scan.status,
            purchases_scan.status,
            claims_scan.new_events,
            purchases_scan.new_events,
        )

        claims = normalize_claims(self._indexer.events(self.namespace))
        vote_counts = count_votes(normalize_purchases(self._indexer.events(self.purchases_namespace)))
        token = self._token_source.token_info(self._executor)
        winnings = aggregate_winnings(claims, token.decimals)

        top = rank_winnings(winnings.values(), self.size)
        identities = self._identities.resolve(entry.address for entry in top)
        rows = build_leaderboard(top, identities, vote_counts=vote_counts, limit=self.size)

        leaderboard = schemas.Leaderboard(
            leaderboard=[schemas.LeaderboardEntry.model_validate(row) for row in rows],
            token_symbol=token.symbol,
            last_updated_ms=int(self._clock() * 1000),
        )
        in_flight = [
            scan.namespace for scan in (claims_scan, purchases_scan) if scan.status == "coalesced"
        ]
        if in_flight:
            # another pass owns the snapshot for these namespaces
            logger.info("Not storing leaderboard snapshot; scans in flight for {}", ", ".join(in_flight))
        else:
            self._store.put_snapshot(self.snapshot_key, leaderboard.model_dump(mode="json"))
        return leaderboard


__all__ = ["LeaderboardService", "TokenSource"]
