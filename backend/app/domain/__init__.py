"""Domain models representing indexed events and their derived views."""

from .models import (
    Identity,
    LeaderboardRow,
    MarketMetadata,
    RawEvent,
    SharesPurchased,
    TokenInfo,
    VoteEntry,
    WinningsClaimed,
    WinningsEntry,
)

__all__ = [
    "Identity",
    "LeaderboardRow",
    "MarketMetadata",
    "RawEvent",
    "SharesPurchased",
    "TokenInfo",
    "VoteEntry",
    "WinningsClaimed",
    "WinningsEntry",
]
