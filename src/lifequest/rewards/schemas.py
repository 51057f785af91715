"""Reward catalog variants and reward endpoint models."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class _RewardBase(BaseModel):
    id: str
    title: str
    description: str | None = None
    coins_cost: int = Field(ge=0)
    xp_reward: int = Field(default=0, ge=0)
    is_active: bool = True


class BadgeReward(_RewardBase):
    type: Literal["badge"] = "badge"
    badge_rarity: Literal["common", "rare", "epic", "legendary"] = "common"


class PartnerOfferReward(_RewardBase):
    type: Literal["partner_offer"] = "partner_offer"
    partner_name: str
    offer_code: str


class CoinBoostReward(_RewardBase):
    type: Literal["coin_boost"] = "coin_boost"
    multiplier: float = Field(gt=1.0)


Reward = Annotated[
    Union[BadgeReward, PartnerOfferReward, CoinBoostReward],
    Field(discriminator="type"),
]

reward_adapter: TypeAdapter[Reward] = TypeAdapter(Reward)


class RewardListResponse(BaseModel):
    rewards: list[Reward]
    total: int


class RedeemRequest(BaseModel):
    reward_id: str = Field(min_length=1, max_length=64)


class UserRewardResponse(BaseModel):
    id: str
    user_id: str
    reward_id: str
    coins_spent: int
    redeemed_at: datetime


class RedeemResponse(BaseModel):
    redemption: UserRewardResponse
    coins: int
    xp: int
    level: int


class RedemptionHistoryResponse(BaseModel):
    redemptions: list[UserRewardResponse]
