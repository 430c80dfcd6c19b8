"""Address to display identity resolution with a persistent cache."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from app.domain import Identity
from app.repositories import IdentityRepository
from ingestion.errors import UpstreamError
from ingestion.retry import RetryExecutor
from ingestion.service import session_scope


class IdentityLookup(Protocol):
    def fetch_users(self, addresses: Sequence[str]) -> dict[str, Identity]:
        ...


def short_address(address: str) -> str:
    """Deterministic fallback display form, e.g. ``0xabcd...ef01``."""

    return f"{address[:6]}...{address[-4:]}"


def display_name(address: str, identity: Identity | None) -> str:
    if identity is not None and identity.display_name:
        return identity.display_name
    return short_address(address)


class IdentityResolver:
    """Resolve wallet addresses to identities, looking up only uncached addresses.

    Successful lookups are persisted indefinitely. Addresses without an
    identity are not remembered between calls, so a profile created later is
    picked up by the next resolution. A batch that still fails after retries
    leaves its addresses unresolved instead of raising.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lookup: IdentityLookup,
        executor: RetryExecutor,
        *,
        batch_size: int = 25,
    ) -> None:
        self._session_factory = session_factory
        self._lookup = lookup
        self._executor = executor
        self.batch_size = batch_size

    def resolve(self, addresses: Iterable[str]) -> dict[str, Identity | None]:
        wanted = sorted({address.lower() for address in addresses if address})
        if not wanted:
            return {}

        with session_scope(self._session_factory) as session:
            cached = IdentityRepository(session).get_many(wanted)

        resolved: dict[str, Identity | None] = {address: cached.get(address) for address in wanted}
        uncached = [address for address in wanted if address not in cached]
        if not uncached:
            return resolved

        fetched: dict[str, Identity] = {}
        for start in range(0, len(uncached), self.batch_size):
            batch = uncached[start : start + self.batch_size]
            try:
                found = self._executor.execute(
                    lambda batch=batch: self._lookup.fetch_users(batch),
                    description=f"identity lookup batch {start // self.batch_size + 1}",
                )
            except UpstreamError as exc:
                logger.error(
                    "Identity lookup failed for {} addresses; using fallback names: {}",
                    len(batch),
                    exc.cause or exc,
                )
                continue
            for address, identity in found.items():
                key = address.lower()
                if key in resolved:
                    fetched[key] = identity

        if fetched:
            with session_scope(self._session_factory) as session:
                IdentityRepository(session).upsert_many(fetched.values())
        resolved.update(fetched)
        logger.info(
            "Resolved identities: {} cached, {} fetched, {} unresolved",
            len(cached),
            len(fetched),
            sum(1 for identity in resolved.values() if identity is None),
        )
        return resolved


__all__ = ["IdentityLookup", "IdentityResolver", "display_name", "short_address"]
