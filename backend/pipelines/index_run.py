from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from loguru import logger

from app.core.config import Settings, get_settings
from app.models import EventType
from ingestion.errors import IndexerError
from ingestion.normalize import normalize_address

from .context import PipelineContext, build_context


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one indexing pass over the market contract")
    parser.add_argument(
        "--address",
        action="append",
        default=None,
        help="Also index the vote history of this wallet address (repeatable)",
    )
    parser.add_argument(
        "--scan-only",
        action="store_true",
        help="Only bring the event caches up to date; skip leaderboard and vote views",
    )
    parser.add_argument(
        "--skip-leaderboard",
        action="store_true",
        help="Do not scan leaderboard claim and purchase events or rebuild the leaderboard",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Write JSON summary to the specified path",
    )
    return parser.parse_args(argv)


def _leaderboard_step(context: PipelineContext, *, scan_only: bool) -> dict[str, Any]:
    service = context.leaderboard_service
    if scan_only:
        claims = context.indexer.sync(service.namespace, EventType.CLAIMED)
        purchases = context.indexer.sync(service.purchases_namespace, EventType.SHARES_PURCHASED)
        return {"scan": claims.to_dict(), "purchases_scan": purchases.to_dict()}
    leaderboard = service.refresh()
    return {
        "entries": len(leaderboard.leaderboard),
        "token_symbol": leaderboard.token_symbol,
        "last_updated_ms": leaderboard.last_updated_ms,
    }


def _votes_step(context: PipelineContext, address: str, *, scan_only: bool) -> dict[str, Any]:
    service = context.vote_history_service
    if scan_only:
        summary = context.indexer.sync(
            service.namespace_for(address),
            EventType.SHARES_PURCHASED,
            indexed_address=address,
        )
        return {"scan": summary.to_dict()}
    history = service.get_votes(address)
    return {"votes": history.total, "token_symbol": history.token_symbol}


def run_index(
    args: argparse.Namespace,
    settings: Settings,
    *,
    context: PipelineContext | None = None,
) -> dict[str, Any]:
    """Run the requested passes and return a JSON-serializable summary.

    A failing step is recorded in the summary and does not stop later steps.
    """

    addresses = [normalize_address(address) for address in (args.address or [])]
    owns_context = context is None
    context = context or build_context(settings)
    started_at = datetime.now(timezone.utc)
    summary: dict[str, Any] = {
        "started_at": started_at.isoformat(),
        "namespace_version": settings.namespace_version,
        "scan_only": bool(args.scan_only),
        "leaderboard": None,
        "addresses": {},
        "errors": [],
    }

    try:
        if not args.skip_leaderboard:
            try:
                summary["leaderboard"] = _leaderboard_step(context, scan_only=args.scan_only)
            except IndexerError as exc:
                logger.exception("Leaderboard step failed")
                summary["errors"].append(f"leaderboard: {exc}")

        for address in addresses:
            try:
                summary["addresses"][address] = _votes_step(
                    context, address, scan_only=args.scan_only
                )
            except IndexerError as exc:
                logger.exception("Vote history step failed for {}", address)
                summary["errors"].append(f"{address}: {exc}")
    finally:
        if owns_context:
            context.close()

    finished_at = datetime.now(timezone.utc)
    summary["finished_at"] = finished_at.isoformat()
    summary["duration_seconds"] = (finished_at - started_at).total_seconds()
    summary["status"] = "failed" if summary["errors"] else "completed"

    if args.summary_path:
        args.summary_path.parent.mkdir(parents=True, exist_ok=True)
        args.summary_path.write_text(json.dumps(summary, indent=2, sort_keys=True))
        logger.info("Wrote run summary to {}", args.summary_path)
    return summary


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    summary = run_index(args, get_settings())
    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0 if summary["status"] == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
