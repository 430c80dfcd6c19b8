from typing import Any

from pydantic import BaseModel, Field, field_validator


class LeaderboardEntry(BaseModel):
    rank: int
    address: str
    display_name: str
    numeric_id: str | None = None
    avatar_url: str | None = None
    winnings: float
    claim_count: int = 0
    vote_count: int = 0

    @field_validator("winnings", mode="before")
    @classmethod
    def _coerce_decimal(cls, value: Any) -> float:
        return float(value)

    model_config = {"from_attributes": True}


class Leaderboard(BaseModel):
    leaderboard: list[LeaderboardEntry] = Field(default_factory=list)
    token_symbol: str
    last_updated_ms: int


class VoteEntry(BaseModel):
    market_id: int
    option: str
    amount: float
    market_name: str
    block_number: int
    transaction_hash: str
    log_index: int
    timestamp: int | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> float:
        return float(value)

    model_config = {"from_attributes": True}


class VoteHistory(BaseModel):
    address: str
    token_symbol: str
    total: int
    items: list[VoteEntry]

