"""Reward API: catalog, redemption and redemption history."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from lifequest.dependencies import Services, get_current_user_id, get_services
from lifequest.rewards.schemas import (
    RedeemRequest,
    RedeemResponse,
    RedemptionHistoryResponse,
    RewardListResponse,
    UserRewardResponse,
)

router = APIRouter(prefix="/api/v1/rewards", tags=["Rewards"])


@router.get("", response_model=RewardListResponse)
async def list_rewards(
    services: Services = Depends(get_services),  # noqa: B008
) -> RewardListResponse:
    rewards = await services.catalog.list_active()
    return RewardListResponse(rewards=rewards, total=len(rewards))


@router.post("/redeem", response_model=RedeemResponse)
async def redeem_reward(
    body: RedeemRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),  # noqa: B008
) -> RedeemResponse:
    """Spend coins on a catalog reward."""
    result = await services.ledger.redeem_reward(user_id, body.reward_id)
    return RedeemResponse.model_validate(result)


@router.get("/me", response_model=RedemptionHistoryResponse)
async def my_redemptions(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),  # noqa: B008
) -> RedemptionHistoryResponse:
    redemptions = await services.ledger.list_redemptions(user_id)
    return RedemptionHistoryResponse(
        redemptions=[UserRewardResponse.model_validate(r) for r in redemptions],
    )
