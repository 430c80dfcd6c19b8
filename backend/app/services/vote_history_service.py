"""Per-address vote history joined with market metadata."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Protocol

from loguru import logger

from app import schemas
from app.models import EventType
from ingestion.errors import UpstreamError
from ingestion.indexer import EventIndexer
from ingestion.normalize import normalize_address, normalize_purchases
from ingestion.retry import RetryExecutor

from .aggregation import aggregate_votes
from .leaderboard_service import TokenSource
from .market_service import MarketService
from .views import SortOrder, VoteSortKey, build_vote_history


class BlockTimestampSource(Protocol):
    def get_block_timestamp(self, block_number: int) -> int:
        ...


class VoteHistoryService:
    def __init__(
        self,
        indexer: EventIndexer,
        token_source: TokenSource,
        executor: RetryExecutor,
        markets: MarketService,
        blocks: BlockTimestampSource,
        *,
        namespace_for: Callable[[str], str],
    ) -> None:
        self._indexer = indexer
        self._token_source = token_source
        self._executor = executor
        self._markets = markets
        self._blocks = blocks
        self.namespace_for = namespace_for

    def _timestamps(self, block_numbers: Iterable[int]) -> dict[int, int]:
        """Fetch block timestamps, stopping at the first block that exhausts its retries."""

        timestamps: dict[int, int] = {}
        for block_number in sorted(set(block_numbers)):
            try:
                timestamps[block_number] = int(
                    self._executor.execute(
                        lambda: self._blocks.get_block_timestamp(block_number),
                        description=f"eth_getBlockByNumber({block_number})",
                    )
                )
            except UpstreamError as exc:
                logger.error(
                    "Block timestamp lookup failed at block {}: {}", block_number, exc.cause or exc
                )
                break
        return timestamps

    def get_votes(
        self,
        address: str,
        *,
        sort: VoteSortKey | str = VoteSortKey.TIMESTAMP,
        order: SortOrder | str = SortOrder.DESC,
        search: str | None = None,
    ) -> schemas.VoteHistory:
        """Return every vote cast by ``address``; raises ``ValueError`` for a malformed address."""

        owner = normalize_address(address)
        namespace = self.namespace_for(owner)
        summary = self._indexer.sync(
            namespace, EventType.SHARES_PURCHASED, indexed_address=owner
        )
        logger.info(
            "Vote scan for {} {}: {} new purchase events", owner, summary.status, summary.new_events
        )

        purchases = [
            purchase
            for purchase in normalize_purchases(self._indexer.events(namespace))
            if purchase.buyer == owner
        ]
        token = self._token_source.token_info(self._executor)
        markets = self._markets.get_markets(purchase.market_id for purchase in purchases)
        timestamps = self._timestamps(
            purchase.block_number for purchase in purchases if purchase.market_id in markets
        )
        votes = aggregate_votes(purchases, markets, token.decimals, timestamps)
        items = build_vote_history(votes, sort=sort, order=order, search=search)
        return schemas.VoteHistory(
            address=owner,
            token_symbol=token.symbol,
            total=len(items),
            items=[schemas.VoteEntry.model_validate(vote) for vote in items],
        )


__all__ = ["BlockTimestampSource", "VoteHistoryService"]
