"""Dialect-specific INSERT statements that tolerate concurrent writers."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def insert_for(session: Session, model: Any):
    """Return an ``INSERT`` for ``model`` that supports ``ON CONFLICT`` on the session's backend."""

    dialect = session.get_bind().dialect.name
    try:
        factory = _INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"Unsupported database backend: {dialect}") from None
    return factory(model)


def insert_ignoring_conflicts(session: Session, model: Any, rows: list[dict[str, Any]]) -> int:
    """Insert ``rows``, skipping any that collide with a unique key; returns the number inserted."""

    if not rows:
        return 0
    stmt = insert_for(session, model).values(rows).on_conflict_do_nothing()
    return max(session.connection().execute(stmt).rowcount, 0)


__all__ = ["insert_for", "insert_ignoring_conflicts"]
