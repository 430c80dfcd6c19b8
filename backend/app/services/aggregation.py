"""Fold deduplicated events into winnings totals and vote histories."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal

from loguru import logger

from app.domain import MarketMetadata, SharesPurchased, VoteEntry, WinningsClaimed, WinningsEntry


def to_display_amount(raw_amount: int, decimals: int) -> Decimal:
    """Convert integer base units into token units (``raw / 10**decimals``)."""

    return Decimal(raw_amount) / (Decimal(10) ** decimals)


def _dedupe(events: Iterable, key: Callable) -> list:
    seen: set = set()
    unique = []
    for event in events:
        identity = key(event)
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(event)
    return unique


def aggregate_winnings(claims: Iterable[WinningsClaimed], decimals: int) -> dict[str, WinningsEntry]:
    """Sum claimed winnings per lower-cased address.

    Raw integer amounts are summed before the single decimal conversion so
    repeated runs over the same events give identical totals.
    """

    unique = _dedupe(claims, lambda claim: (claim.transaction_hash.lower(), claim.log_index))
    raw_totals: dict[str, int] = {}
    counts: dict[str, int] = {}
    for claim in unique:
        address = claim.user.lower()
        raw_totals[address] = raw_totals.get(address, 0) + claim.amount
        counts[address] = counts.get(address, 0) + 1
    return {
        address: WinningsEntry(
            address=address,
            cumulative_amount=to_display_amount(total, decimals),
            claim_count=counts[address],
        )
        for address, total in raw_totals.items()
    }


def count_votes(purchases: Iterable[SharesPurchased]) -> dict[str, int]:
    """Number of distinct purchases per buyer."""

    unique = _dedupe(
        purchases,
        lambda purchase: (purchase.market_id, purchase.transaction_hash.lower(), purchase.log_index),
    )
    counts: dict[str, int] = {}
    for purchase in unique:
        buyer = purchase.buyer.lower()
        counts[buyer] = counts.get(buyer, 0) + 1
    return counts


def aggregate_votes(
    purchases: Iterable[SharesPurchased],
    markets: Mapping[int, MarketMetadata],
    decimals: int,
    timestamps: Mapping[int, int] | None = None,
) -> list[VoteEntry]:
    """Join purchases with market metadata and block timestamps in chronological order.

    Purchases whose market metadata is unknown are dropped with a warning.
    Votes in blocks missing from ``timestamps`` carry no timestamp.
    """

    unique = _dedupe(
        purchases,
        lambda purchase: (purchase.market_id, purchase.transaction_hash.lower(), purchase.log_index),
    )
    unique.sort(key=lambda purchase: (purchase.block_number, purchase.log_index))

    votes: list[VoteEntry] = []
    dropped: dict[int, int] = {}
    for purchase in unique:
        market = markets.get(purchase.market_id)
        if market is None:
            dropped[purchase.market_id] = dropped.get(purchase.market_id, 0) + 1
            continue
        votes.append(
            VoteEntry(
                market_id=purchase.market_id,
                option=market.option_a if purchase.is_option_a else market.option_b,
                amount=to_display_amount(purchase.amount, decimals),
                market_name=market.question,
                block_number=purchase.block_number,
                transaction_hash=purchase.transaction_hash,
                log_index=purchase.log_index,
                timestamp=(timestamps or {}).get(purchase.block_number),
            )
        )
    for market_id, count in sorted(dropped.items()):
        logger.warning(
            "Dropped {} votes for market {} without resolvable metadata", count, market_id
        )
    return votes


__all__ = ["aggregate_votes", "aggregate_winnings", "count_votes", "to_display_amount"]
