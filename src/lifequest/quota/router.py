"""Quota status for the caller."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from lifequest.dependencies import Identity, Services, get_identity, get_services

router = APIRouter(prefix="/api/v1/quota", tags=["Quota"])


class QuotaStatusResponse(BaseModel):
    action_class: str
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    bypassed: bool


@router.get("/{action_class}", response_model=QuotaStatusResponse)
async def quota_status(
    action_class: str,
    identity: Identity = Depends(get_identity),  # noqa: B008
    services: Services = Depends(get_services),  # noqa: B008
) -> QuotaStatusResponse:
    """Current standing in ``action_class`` without consuming an attempt."""
    try:
        decision = await services.quota.status(identity.key, action_class)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return QuotaStatusResponse.model_validate(decision.to_dict())
