"""Shape aggregates into the leaderboard and vote history views."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from enum import Enum

from app.domain import Identity, LeaderboardRow, VoteEntry, WinningsEntry

from .identity_service import display_name


class VoteSortKey(str, Enum):
    MARKET_ID = "market_id"
    MARKET_NAME = "market_name"
    OPTION = "option"
    AMOUNT = "amount"
    BLOCK_NUMBER = "block_number"
    TIMESTAMP = "timestamp"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


def rank_winnings(entries: Iterable[WinningsEntry], limit: int) -> list[WinningsEntry]:
    """Highest winnings first, ties broken by address; zero balances are excluded."""

    ranked = sorted(
        (entry for entry in entries if entry.cumulative_amount > Decimal(0)),
        key=lambda entry: (-entry.cumulative_amount, entry.address),
    )
    return ranked[:limit]


def build_leaderboard(
    entries: Iterable[WinningsEntry],
    identities: Mapping[str, Identity | None],
    *,
    vote_counts: Mapping[str, int] | None = None,
    limit: int = 10,
) -> list[LeaderboardRow]:
    counts = vote_counts or {}
    rows: list[LeaderboardRow] = []
    for rank, entry in enumerate(rank_winnings(entries, limit), start=1):
        identity = identities.get(entry.address)
        rows.append(
            LeaderboardRow(
                rank=rank,
                address=entry.address,
                display_name=display_name(entry.address, identity),
                numeric_id=identity.numeric_id if identity else None,
                avatar_url=identity.avatar_url if identity else None,
                winnings=entry.cumulative_amount,
                claim_count=entry.claim_count,
                vote_count=counts.get(entry.address, 0),
            )
        )
    return rows


def _vote_sort_value(vote: VoteEntry, key: VoteSortKey):
    if key is VoteSortKey.MARKET_ID:
        return (vote.market_id, vote.block_number, vote.log_index)
    if key is VoteSortKey.MARKET_NAME:
        return (vote.market_name.casefold(), vote.block_number, vote.log_index)
    if key is VoteSortKey.OPTION:
        return (vote.option.casefold(), vote.block_number, vote.log_index)
    if key is VoteSortKey.AMOUNT:
        return (vote.amount, vote.block_number, vote.log_index)
    # block timestamps never decrease with height; TIMESTAMP shares block order
    return (vote.block_number, vote.log_index)


def build_vote_history(
    votes: Iterable[VoteEntry],
    *,
    sort: VoteSortKey | str = VoteSortKey.TIMESTAMP,
    order: SortOrder | str = SortOrder.DESC,
    search: str | None = None,
) -> list[VoteEntry]:
    """Filter by market name or option label, then sort. The full list is returned."""

    sort_key = VoteSortKey(sort)
    sort_order = SortOrder(order)
    needle = (search or "").strip().casefold()
    selected = [
        vote
        for vote in votes
        if not needle
        or needle in vote.market_name.casefold()
        or needle in vote.option.casefold()
    ]
    return sorted(
        selected,
        key=lambda vote: _vote_sort_value(vote, sort_key),
        reverse=sort_order is SortOrder.DESC,
    )


__all__ = [
    "SortOrder",
    "VoteSortKey",
    "build_leaderboard",
    "build_vote_history",
    "rank_winnings",
]
