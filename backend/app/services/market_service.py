"""Market metadata lookups backed by the write-once market cache."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from app.domain import MarketMetadata
from app.repositories import MarketRepository
from ingestion.errors import UpstreamError
from ingestion.retry import RetryExecutor
from ingestion.service import session_scope


class MarketInfoSource(Protocol):
    def get_market_info_batch(self, market_ids: Sequence[int]) -> list[MarketMetadata]:
        ...


class MarketService:
    """Resolve market questions and option labels, fetching unknown markets in one call."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        source: MarketInfoSource,
        executor: RetryExecutor,
    ) -> None:
        self._session_factory = session_factory
        self._source = source
        self._executor = executor

    def get_markets(self, market_ids: Iterable[int]) -> dict[int, MarketMetadata]:
        wanted = sorted({int(market_id) for market_id in market_ids})
        if not wanted:
            return {}

        with session_scope(self._session_factory) as session:
            known = MarketRepository(session).get_many(wanted)

        missing = [market_id for market_id in wanted if market_id not in known]
        if not missing:
            return known

        try:
            fetched = self._executor.execute(
                lambda: self._source.get_market_info_batch(missing),
                description=f"getMarketInfoBatch({len(missing)} markets)",
            )
        except UpstreamError as exc:
            logger.error(
                "Market metadata lookup failed for {} markets: {}", len(missing), exc.cause or exc
            )
            return known

        wanted_ids = set(missing)
        fetched = [market for market in fetched if market.market_id in wanted_ids]
        with session_scope(self._session_factory) as session:
            inserted = MarketRepository(session).insert_missing(fetched)
        if inserted:
            logger.info("Cached metadata for {} markets", inserted)

        known.update({market.market_id: market for market in fetched})
        return known


__all__ = ["MarketInfoSource", "MarketService"]
