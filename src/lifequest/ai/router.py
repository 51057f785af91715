"""AI call authorization."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lifequest.dependencies import Identity, Services, get_current_user_id, get_identity, get_services

router = APIRouter(prefix="/api/v1/ai", tags=["AI"])


class AuthorizeRequest(BaseModel):
    purpose: Literal["recommendation", "mission_generation"] | None = None


class AuthorizeResponse(BaseModel):
    allowed: bool
    purpose: str | None = None
    remaining: int
    reset_at: int
    coins_charged: int
    coins: int


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(
    body: AuthorizeRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    identity: Identity = Depends(get_identity),  # noqa: B008
    services: Services = Depends(get_services),  # noqa: B008
) -> AuthorizeResponse:
    """Admit one call to the AI service, charging quota and coins."""
    purpose = body.purpose if body else None
    result = await services.ai_usage.authorize_ai_call(identity.key, user_id, purpose=purpose)
    return AuthorizeResponse.model_validate(result)
