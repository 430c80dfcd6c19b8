"""Typed domain representations used across ingestion, aggregation, and APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True, slots=True)
class RawEvent:
    """Decoded log entry as observed on chain; identity is ``(transaction_hash, log_index)``."""

    event_type: str
    block_number: int
    transaction_hash: str
    log_index: int
    args: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> tuple[str, int]:
        return (self.transaction_hash.lower(), self.log_index)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(frozen=True, slots=True)
class SharesPurchased:
    """A validated share purchase (a "vote") on one side of a market."""

    market_id: int
    buyer: str
    is_option_a: bool
    amount: int
    block_number: int
    transaction_hash: str
    log_index: int


@dataclass(frozen=True, slots=True)
class WinningsClaimed:
    """A validated payout claimed by a user after market resolution."""

    market_id: int
    user: str
    amount: int
    block_number: int
    transaction_hash: str
    log_index: int


@dataclass(frozen=True, slots=True)
class MarketMetadata:
    market_id: int
    question: str
    option_a: str
    option_b: str


@dataclass(frozen=True, slots=True)
class Identity:
    address: str
    display_name: str
    numeric_id: str
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class TokenInfo:
    address: str
    symbol: str
    decimals: int


@dataclass(slots=True)
class WinningsEntry:
    address: str
    cumulative_amount: Decimal
    claim_count: int = 0


@dataclass(frozen=True, slots=True)
class VoteEntry:
    market_id: int
    option: str
    amount: Decimal
    market_name: str
    block_number: int
    transaction_hash: str
    log_index: int
    timestamp: int | None = None

    @property
    def key(self) -> tuple[int, str, int]:
        return (self.market_id, self.transaction_hash.lower(), self.log_index)


@dataclass(frozen=True, slots=True)
class LeaderboardRow:
    """Ranked leaderboard entry joined with its resolved display identity."""

    rank: int
    address: str
    display_name: str
    numeric_id: str | None
    avatar_url: str | None
    winnings: Decimal
    claim_count: int
    vote_count: int = 0
