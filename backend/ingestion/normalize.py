from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from loguru import logger

from app.domain import RawEvent, SharesPurchased, WinningsClaimed
from app.models import EventType

from .errors import MalformedEventError


def _parse_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or value is None:
        raise MalformedEventError(f"{field_name} must be an integer, got {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        candidate = value.strip()
        try:
            parsed = int(candidate, 16) if candidate.lower().startswith("0x") else int(candidate)
        except ValueError as exc:
            raise MalformedEventError(f"{field_name} is not numeric: {value!r}") from exc
    else:
        raise MalformedEventError(f"{field_name} has unsupported type {type(value).__name__}")
    if parsed < 0:
        raise MalformedEventError(f"{field_name} must not be negative")
    return parsed


def _parse_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in {"true", "false"}:
        return value.lower() == "true"
    raise MalformedEventError(f"{field_name} must be a boolean, got {value!r}")


def _parse_address(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise MalformedEventError(f"{field_name} must be an address string")
    candidate = value.strip().lower()
    if len(candidate) != 42 or not candidate.startswith("0x"):
        raise MalformedEventError(f"{field_name} is not a 20-byte address: {value!r}")
    try:
        int(candidate[2:], 16)
    except ValueError as exc:
        raise MalformedEventError(f"{field_name} is not hexadecimal: {value!r}") from exc
    return candidate


def normalize_address(value: Any) -> str:
    """Lower-case a ``0x``-prefixed 20-byte address, raising ``ValueError`` when invalid."""

    try:
        return _parse_address(value, "address")
    except MalformedEventError as exc:
        raise ValueError(str(exc)) from exc


def _require(args: dict[str, Any], name: str) -> Any:
    if name not in args:
        raise MalformedEventError(f"missing field {name}")
    return args[name]


def normalize_purchase(event: RawEvent) -> SharesPurchased:
    if event.event_type != EventType.SHARES_PURCHASED.value:
        raise MalformedEventError(f"expected SharesPurchased, got {event.event_type}")
    args = event.args or {}
    return SharesPurchased(
        market_id=_parse_int(_require(args, "marketId"), "marketId"),
        buyer=_parse_address(_require(args, "buyer"), "buyer"),
        is_option_a=_parse_bool(_require(args, "isOptionA"), "isOptionA"),
        amount=_parse_int(_require(args, "amount"), "amount"),
        block_number=event.block_number,
        transaction_hash=event.transaction_hash.lower(),
        log_index=event.log_index,
    )


def normalize_claim(event: RawEvent) -> WinningsClaimed:
    if event.event_type != EventType.CLAIMED.value:
        raise MalformedEventError(f"expected Claimed, got {event.event_type}")
    args = event.args or {}
    return WinningsClaimed(
        market_id=_parse_int(_require(args, "marketId"), "marketId"),
        user=_parse_address(_require(args, "user"), "user"),
        amount=_parse_int(_require(args, "amount"), "amount"),
        block_number=event.block_number,
        transaction_hash=event.transaction_hash.lower(),
        log_index=event.log_index,
    )


def _normalize_all(events: Iterable[RawEvent], normalizer) -> list:
    normalized = []
    for event in events:
        try:
            normalized.append(normalizer(event))
        except MalformedEventError as exc:
            logger.warning(
                "Discarding malformed {} event tx={} index={}: {}",
                event.event_type,
                event.transaction_hash,
                event.log_index,
                exc,
            )
    return normalized


def normalize_purchases(events: Iterable[RawEvent]) -> list[SharesPurchased]:
    return _normalize_all(events, normalize_purchase)


def normalize_claims(events: Iterable[RawEvent]) -> list[WinningsClaimed]:
    return _normalize_all(events, normalize_claim)


__all__ = [
    "normalize_address",
    "normalize_claim",
    "normalize_claims",
    "normalize_purchase",
    "normalize_purchases",
]
