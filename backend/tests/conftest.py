from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings
from app.db import build_db_components, init_db
from app.domain import Identity, MarketMetadata, RawEvent, TokenInfo
from app.models import EventType
from ingestion.retry import RetryExecutor
from ingestion.service import EventStore

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
ONE_TOKEN = 10**18


def make_claim(
    user: str,
    amount: int,
    *,
    block: int,
    log_index: int = 0,
    tx: str | None = None,
    market_id: int = 1,
) -> RawEvent:
    return RawEvent(
        event_type=EventType.CLAIMED.value,
        block_number=block,
        transaction_hash=tx or f"0x{block:064x}",
        log_index=log_index,
        args={"marketId": str(market_id), "user": user, "amount": str(amount)},
    )


def make_purchase(
    buyer: str,
    amount: int,
    *,
    market_id: int,
    is_option_a: bool = True,
    block: int,
    log_index: int = 0,
    tx: str | None = None,
) -> RawEvent:
    return RawEvent(
        event_type=EventType.SHARES_PURCHASED.value,
        block_number=block,
        transaction_hash=tx or f"0x{block:064x}",
        log_index=log_index,
        args={
            "marketId": str(market_id),
            "buyer": buyer,
            "isOptionA": is_option_a,
            "amount": str(amount),
        },
    )


def block_timestamp(block_number: int) -> int:
    return 1_700_000_000 + 2 * block_number


class StubChain:
    """In-memory log source with injectable per-range failures."""

    def __init__(
        self,
        events: list[RawEvent] | None = None,
        *,
        head: int = 0,
        markets: dict[int, MarketMetadata] | None = None,
        token: TokenInfo | None = None,
    ) -> None:
        self.events = list(events or [])
        self.head = head
        self.markets = dict(markets or {})
        self.token = token or TokenInfo(address="0x" + "55" * 20, symbol="USDC", decimals=18)
        self.failing_ranges: set[tuple[int, int]] = set()
        self.log_calls: list[tuple[str, int, int, str | None]] = []
        self.market_calls: list[list[int]] = []
        self.market_error: Exception | None = None
        self.block_calls: list[int] = []
        self.block_error: Exception | None = None

    def get_block_number(self) -> int:
        return self.head

    def get_block_timestamp(self, block_number: int) -> int:
        self.block_calls.append(block_number)
        if self.block_error is not None:
            raise self.block_error
        return block_timestamp(block_number)

    def get_logs(
        self,
        event_type: EventType,
        from_block: int,
        to_block: int,
        *,
        indexed_address: str | None = None,
    ) -> list[RawEvent]:
        self.log_calls.append((event_type.value, from_block, to_block, indexed_address))
        if (from_block, to_block) in self.failing_ranges:
            raise ConnectionError(f"upstream unavailable for {from_block}-{to_block}")
        field = "buyer" if event_type is EventType.SHARES_PURCHASED else "user"
        return [
            event
            for event in self.events
            if event.event_type == event_type.value
            and from_block <= event.block_number <= to_block
            and (indexed_address is None or event.args[field].lower() == indexed_address.lower())
        ]

    def token_info(self, executor: RetryExecutor) -> TokenInfo:
        return self.token

    def get_market_info_batch(self, market_ids) -> list[MarketMetadata]:
        self.market_calls.append(list(market_ids))
        if self.market_error is not None:
            raise self.market_error
        return [self.markets[market_id] for market_id in market_ids if market_id in self.markets]


class StubIdentityLookup:
    def __init__(self, users: dict[str, Identity] | None = None) -> None:
        self.users = {address.lower(): identity for address, identity in (users or {}).items()}
        self.calls: list[list[str]] = []
        self.error: Exception | None = None
        self.closed = False

    def fetch_users(self, addresses) -> dict[str, Identity]:
        self.calls.append(list(addresses))
        if self.error is not None:
            raise self.error
        return {address: self.users[address] for address in addresses if address in self.users}

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'indexer.db'}",
        supabase_db_url=None,
        deployment_block=1000,
        log_range_size=500,
        scan_concurrency=2,
        retry_attempts=3,
        neynar_api_key="test-key",
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def session_factory(test_settings):
    engine, factory = build_db_components(test_settings.resolved_database_url)
    init_db(bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def executor(sleeps) -> RetryExecutor:
    return RetryExecutor(max_attempts=3, base_delay=1.0, rate_limit_delay=5.0, sleep=sleeps.append)


@pytest.fixture
def store(session_factory, test_settings) -> EventStore:
    return EventStore(session_factory, deployment_block=test_settings.deployment_block)


@pytest.fixture
def stub_chain() -> StubChain:
    return StubChain(head=2499)


@pytest.fixture
def identity_lookup() -> StubIdentityLookup:
    return StubIdentityLookup()


@pytest.fixture
def build_stub_context(test_settings, stub_chain, identity_lookup):
    from pipelines.context import build_context

    contexts = []

    def _build(**overrides: Any):
        context = build_context(
            test_settings,
            chain=overrides.get("chain", stub_chain),
            identity_lookup=overrides.get("identity_lookup", identity_lookup),
            sleep=lambda _: None,
        )
        contexts.append(context)
        return context

    yield _build
    for context in contexts:
        context.engine.dispose()
