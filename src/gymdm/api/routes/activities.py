"""Manual activity logging routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ...models.activity import Activity
from ...models.base import CamelModel
from ...services import ActivityService
from ..deps import get_activity_service, get_current_user_id

router = APIRouter()


class ManualActivityRequest(CamelModel):
    """Request model for logging a workout without a device."""
    duration_minutes: float = Field(..., gt=0, le=1440, description="Duration in minutes")
    activity_type: str = Field(default="Workout", max_length=50)
    started_at: Optional[datetime] = Field(None, description="Start time, defaults to now")
    distance_km: float = Field(default=0.0, ge=0, le=1000)
    name: Optional[str] = Field(None, max_length=200)


@router.post("/seasons/{season_id}/activities/manual", response_model=Activity, status_code=201)
async def log_manual_activity(
    season_id: str,
    request: ManualActivityRequest,
    user_id: str = Depends(get_current_user_id),
    service: ActivityService = Depends(get_activity_service),
):
    """Log a manual workout for the caller in this season."""
    return await service.log_manual_activity(
        season_id,
        user_id,
        duration_minutes=request.duration_minutes,
        activity_type=request.activity_type,
        started_at=request.started_at,
        distance_km=request.distance_km,
        name=request.name,
    )
