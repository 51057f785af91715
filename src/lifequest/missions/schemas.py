"""Pydantic request/response models for mission endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class MissionResponse(BaseModel):
    id: str
    title: str
    description: str | None = None
    category: str
    difficulty: str
    xp_reward: int
    lifescore_impact: int = 0
    coin_reward: int | None = None
    is_active: bool = True


class MissionListResponse(BaseModel):
    missions: list[MissionResponse]
    total: int


class MissionStepResponse(BaseModel):
    id: str
    user_mission_id: str
    step_number: int
    title: str
    description: str | None = None
    status: str
    completed_at: datetime | None = None


class UserMissionResponse(BaseModel):
    id: str
    user_id: str
    mission_id: str
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    completion_data: dict[str, Any] | None = None
    credited: bool = False
    xp_earned: int = 0
    coins_earned: int = 0
    lifescore_change: int = 0


class UserMissionListResponse(BaseModel):
    missions: list[UserMissionResponse]
    total: int


class StartMissionRequest(BaseModel):
    mission_id: str = Field(min_length=1, max_length=64)


class StartMissionResponse(BaseModel):
    user_mission: UserMissionResponse
    mission: MissionResponse
    steps: list[MissionStepResponse]


class StepCompletionResponse(BaseModel):
    step: MissionStepResponse
    completed_steps: int
    total_steps: int
    all_completed: bool


class CompleteMissionRequest(BaseModel):
    mission_id: str = Field(min_length=1, max_length=64)
    completion_data: dict[str, Any] | None = None


class BalancesSnapshot(BaseModel):
    coins: int
    xp: int
    level: int
    lifescore: int
    current_streak: int | None = None
    longest_streak: int | None = None


class SettlementResponse(BaseModel):
    applied: bool
    xp: int
    coins: int
    lifescore_change: int
    level_up: bool
    balances: BalancesSnapshot | None = None


class CompleteMissionResponse(BaseModel):
    user_mission: UserMissionResponse
    mission: MissionResponse
    settlement: SettlementResponse
