from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings
from app.db import build_db_components, init_db
from app.services.identity_service import IdentityLookup, IdentityResolver
from app.services.leaderboard_service import LeaderboardService
from app.services.market_service import MarketService
from app.services.vote_history_service import VoteHistoryService
from ingestion.chain import ChainClient
from ingestion.client import NeynarClient
from ingestion.indexer import EventIndexer
from ingestion.retry import RetryExecutor
from ingestion.scanner import RangeScanner
from ingestion.service import EventStore


@dataclass(slots=True)
class PipelineContext:
    """Long-lived components shared by the API process and the CLI runner."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    executor: RetryExecutor
    chain: ChainClient
    identity_lookup: IdentityLookup
    store: EventStore
    indexer: EventIndexer
    identities: IdentityResolver
    leaderboard_service: LeaderboardService
    vote_history_service: VoteHistoryService

    def close(self) -> None:
        close = getattr(self.identity_lookup, "close", None)
        if callable(close):
            close()
        self.engine.dispose()


def build_context(
    settings: Settings,
    *,
    chain: ChainClient | None = None,
    identity_lookup: IdentityLookup | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PipelineContext:
    engine, session_factory = build_db_components(
        settings.resolved_database_url, echo=settings.debug
    )
    init_db(bind=engine)

    executor = RetryExecutor.from_settings(settings, sleep=sleep)
    scanner = RangeScanner(
        executor,
        range_size=settings.log_range_size,
        concurrency=settings.scan_concurrency,
    )
    chain = chain or ChainClient(
        rpc_url=settings.rpc_url,
        contract_address=settings.market_contract_address,
        token_address=settings.token_address,
        timeout=settings.rpc_timeout_seconds,
    )
    identity_lookup = identity_lookup or NeynarClient(
        api_key=settings.neynar_api_key,
        base_url=str(settings.neynar_base_url),
    )
    store = EventStore(session_factory, deployment_block=settings.deployment_block)
    indexer = EventIndexer(chain, store, scanner, executor)
    identities = IdentityResolver(
        session_factory,
        identity_lookup,
        executor,
        batch_size=settings.identity_batch_size,
    )
    leaderboard_service = LeaderboardService(
        indexer,
        chain,
        executor,
        store,
        identities,
        namespace=settings.namespace("leaderboard_claims"),
        purchases_namespace=settings.namespace("leaderboard_purchases"),
        snapshot_key=settings.namespace("leaderboard"),
        ttl_seconds=settings.leaderboard_ttl_seconds,
        size=settings.leaderboard_size,
    )
    vote_history_service = VoteHistoryService(
        indexer,
        chain,
        executor,
        MarketService(session_factory, chain, executor),
        chain,
        namespace_for=lambda address: settings.namespace(f"votes_{address}"),
    )
    return PipelineContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        executor=executor,
        chain=chain,
        identity_lookup=identity_lookup,
        store=store,
        indexer=indexer,
        identities=identities,
        leaderboard_service=leaderboard_service,
        vote_history_service=vote_history_service,
    )


__all__ = ["PipelineContext", "build_context"]
