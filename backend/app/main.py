from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request
from loguru import logger

from ingestion.errors import ConfigurationError, UpstreamError
from pipelines.context import build_context

from . import schemas
from .core.config import settings
from .services.leaderboard_service import LeaderboardService
from .services.views import SortOrder, VoteSortKey
from .services.vote_history_service import VoteHistoryService

app = FastAPI(title="Market Indexer API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Build long-lived clients, caches and services when the API boots."""

    app.state.context = build_context(settings)


@app.on_event("shutdown")
def on_shutdown() -> None:
    context = getattr(app.state, "context", None)
    if context is not None:
        context.close()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _leaderboard_service(request: Request) -> LeaderboardService:
    return request.app.state.context.leaderboard_service


def _vote_history_service(request: Request) -> VoteHistoryService:
    return request.app.state.context.vote_history_service


@app.get("/leaderboard", response_model=schemas.Leaderboard, tags=["leaderboard"])
def get_leaderboard(service: LeaderboardService = Depends(_leaderboard_service)):
    """Top winners ranked by cumulative claimed winnings."""

    try:
        return service.get_leaderboard()
    except ConfigurationError:
        logger.exception("Leaderboard unavailable: server misconfigured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    except UpstreamError:
        logger.exception("Leaderboard unavailable: upstream failure")
        raise HTTPException(status_code=502, detail="Failed to fetch leaderboard")


@app.get("/users/{address}/votes", response_model=schemas.VoteHistory, tags=["votes"])
def get_user_votes(
    address: Annotated[
        str, Path(description="Wallet address", pattern="^0x[0-9a-fA-F]{40}$")
    ],
    sort: Annotated[VoteSortKey, Query(description="Field to sort by")] = VoteSortKey.TIMESTAMP,
    order: Annotated[SortOrder, Query(description="Sort order (asc|desc)")] = SortOrder.DESC,
    search: Annotated[
        str | None,
        Query(description="Case-insensitive match on market name or option", max_length=200),
    ] = None,
    service: VoteHistoryService = Depends(_vote_history_service),
):
    """Every vote cast by a wallet, joined with market names and option labels."""

    try:
        return service.get_votes(address, sort=sort, order=order, search=search)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ConfigurationError:
        logger.exception("Vote history unavailable: server misconfigured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    except UpstreamError:
        logger.exception("Vote history unavailable for {}: upstream failure", address)
        raise HTTPException(status_code=502, detail="Failed to fetch vote history")
