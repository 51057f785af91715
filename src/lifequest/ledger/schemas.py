"""Pydantic response models for ledger and leaderboard endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LevelProgress(BaseModel):
    level: int
    xp_into_level: int
    xp_for_level: int
    next_level: int
    percentage: int


class BalancesResponse(BaseModel):
    user_id: str
    coins: int
    lifescore: int
    xp: int
    level: int
    current_streak: int = 0
    longest_streak: int = 0
    progress: LevelProgress


class LifeScoreHistoryEntry(BaseModel):
    id: str
    old_score: int
    new_score: int
    change_reason: str
    created_at: datetime


class LifeScoreHistoryResponse(BaseModel):
    entries: list[LifeScoreHistoryEntry]
    total: int


class LeaderboardEntry(BaseModel):
    rank: int
    id: str
    username: str | None = None
    level: int
    lifescore: int
    xp: int


class LeaderboardResponse(BaseModel):
    board: str
    entries: list[LeaderboardEntry]
