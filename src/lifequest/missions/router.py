"""Mission API: catalog, start, step completion and completion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from lifequest.dependencies import Identity, Services, get_current_user_id, get_identity, get_services
from lifequest.missions.schemas import (
    CompleteMissionRequest,
    CompleteMissionResponse,
    MissionListResponse,
    MissionResponse,
    MissionStepResponse,
    StartMissionRequest,
    StartMissionResponse,
    StepCompletionResponse,
    UserMissionListResponse,
    UserMissionResponse,
)
from lifequest.missions.state_machine import MissionStatus
from lifequest.quota.guard import MISSION_COMPLETION

router = APIRouter(prefix="/api/v1/missions", tags=["Missions"])


@router.get("", response_model=MissionListResponse)
async def list_missions(
    services: Services = Depends(get_services),  # noqa: B008
) -> MissionListResponse:
    """Active mission catalog."""
    missions = await services.missions.list_missions()
    return MissionListResponse(
        missions=[MissionResponse.model_validate(m) for m in missions],
        total=len(missions),
    )


@router.get("/me", response_model=UserMissionListResponse)
async def my_missions(
    status: MissionStatus | None = Query(None),  # noqa: B008
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),  # noqa: B008
) -> UserMissionListResponse:
    """The caller's missions, newest first."""
    runs = await services.missions.list_user_missions(user_id, status.value if status else None)
    return UserMissionListResponse(
        missions=[UserMissionResponse.model_validate(r) for r in runs],
        total=len(runs),
    )


@router.post("/start", response_model=StartMissionResponse, status_code=201)
async def start_mission(
    body: StartMissionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),  # noqa: B008
) -> StartMissionResponse:
    """Start a mission and create its steps."""
    result = await services.missions.start(user_id, body.mission_id)
    return StartMissionResponse(
        user_mission=UserMissionResponse.model_validate(result["user_mission"]),
        mission=MissionResponse.model_validate(result["mission"]),
        steps=[MissionStepResponse.model_validate(s) for s in result["steps"]],
    )


@router.post("/steps/{step_id}/complete", response_model=StepCompletionResponse)
async def complete_step(
    step_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),  # noqa: B008
) -> StepCompletionResponse:
    """Mark one step completed. Repeating it is a no-op."""
    result = await services.missions.complete_step(step_id, user_id=user_id)
    return StepCompletionResponse(
        step=MissionStepResponse.model_validate(result["step"]),
        completed_steps=result["completed_steps"],
        total_steps=result["total_steps"],
        all_completed=result["all_completed"],
    )


@router.post("/complete", response_model=CompleteMissionResponse)
async def complete_mission(
    body: CompleteMissionRequest,
    user_id: str = Depends(get_current_user_id),
    identity: Identity = Depends(get_identity),  # noqa: B008
    services: Services = Depends(get_services),  # noqa: B008
) -> CompleteMissionResponse:
    """Complete a fully stepped mission and credit its reward."""
    await services.quota.enforce(identity.key, MISSION_COMPLETION)
    result = await services.missions.complete(user_id, body.mission_id, body.completion_data)
    return CompleteMissionResponse.model_validate(result)
