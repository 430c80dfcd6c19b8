"""Market metadata data access helpers."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain import MarketMetadata
from app.models import MarketMetadataRecord, utcnow

from .upsert import insert_ignoring_conflicts


class MarketRepository:
    """Write-once cache of market questions and option labels."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def insert_missing(self, markets: Iterable[MarketMetadata]) -> int:
        """Store metadata for markets not cached yet; existing entries are never rewritten."""

        rows = {
            market.market_id: {
                "market_id": market.market_id,
                "question": market.question,
                "option_a": market.option_a,
                "option_b": market.option_b,
                "fetched_at": utcnow(),
            }
            for market in markets
        }
        return insert_ignoring_conflicts(self._session, MarketMetadataRecord, list(rows.values()))

    # ------------------------------------------------------------------
    # Queries

    def get_many(self, market_ids: Iterable[int]) -> dict[int, MarketMetadata]:
        ids = sorted({int(market_id) for market_id in market_ids})
        if not ids:
            return {}
        rows = self._session.execute(
            select(MarketMetadataRecord).where(MarketMetadataRecord.market_id.in_(ids))
        ).scalars()
        return {
            int(row.market_id): MarketMetadata(
                market_id=int(row.market_id),
                question=row.question,
                option_a=row.option_a,
                option_b=row.option_b,
            )
            for row in rows
        }


__all__ = ["MarketRepository"]
