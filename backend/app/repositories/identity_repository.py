"""Persistent address to identity map."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain import Identity
from app.models import IdentityRecord, utcnow

from .upsert import insert_for


class IdentityRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_many(self, addresses: Iterable[str]) -> dict[str, Identity]:
        keys = sorted({address.lower() for address in addresses})
        if not keys:
            return {}
        rows = self._session.execute(
            select(IdentityRecord).where(IdentityRecord.address.in_(keys))
        ).scalars()
        return {
            row.address: Identity(
                address=row.address,
                display_name=row.display_name,
                numeric_id=row.numeric_id,
                avatar_url=row.avatar_url,
            )
            for row in rows
        }

    def upsert_many(self, identities: Iterable[Identity]) -> None:
        rows = {
            identity.address.lower(): {
                "address": identity.address.lower(),
                "display_name": identity.display_name,
                "numeric_id": identity.numeric_id,
                "avatar_url": identity.avatar_url,
                "resolved_at": utcnow(),
            }
            for identity in identities
        }
        if not rows:
            return
        stmt = insert_for(self._session, IdentityRecord).values(list(rows.values()))
        stmt = stmt.on_conflict_do_update(
            index_elements=["address"],
            set_={
                "display_name": stmt.excluded.display_name,
                "numeric_id": stmt.excluded.numeric_id,
                "avatar_url": stmt.excluded.avatar_url,
                "resolved_at": stmt.excluded.resolved_at,
            },
        )
        self._session.execute(stmt)


__all__ = ["IdentityRepository"]
