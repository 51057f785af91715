"""Ledger API: balances, LifeScore history and leaderboards."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from lifequest.dependencies import Services, get_current_user_id, get_services
from lifequest.ledger.leaderboard import BOARDS
from lifequest.ledger.schemas import (
    BalancesResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    LifeScoreHistoryEntry,
    LifeScoreHistoryResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Ledger"])


@router.get("/ledger/me", response_model=BalancesResponse)
async def my_balances(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),  # noqa: B008
) -> BalancesResponse:
    """Coins, XP, level and LifeScore for the caller."""
    return BalancesResponse.model_validate(await services.ledger.get_balances(user_id))


@router.get("/ledger/me/lifescore-history", response_model=LifeScoreHistoryResponse)
async def my_lifescore_history(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),  # noqa: B008
) -> LifeScoreHistoryResponse:
    entries = await services.ledger.lifescore_history(user_id, limit=limit)
    return LifeScoreHistoryResponse(
        entries=[LifeScoreHistoryEntry.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.get("/leaderboard/{board}", response_model=LeaderboardResponse)
async def leaderboard(
    board: str,
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),  # noqa: B008
) -> LeaderboardResponse:
    """Top users by LifeScore or XP."""
    if board not in BOARDS:
        raise HTTPException(status_code=404, detail=f"Unknown leaderboard: {board}")
    entries = await services.leaderboard.top(board, limit=limit)
    return LeaderboardResponse(
        board=board,
        entries=[LeaderboardEntry.model_validate(e) for e in entries],
    )
