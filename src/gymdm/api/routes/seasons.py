"""
Season API routes.

The live endpoint recomputes the whole season on every read; the lifecycle
endpoints are owner-only stage transitions.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ...exceptions import NotFoundError
from ...models.base import CamelModel
from ...models.season import HeartAdjustment, Player, Season
from ...models.snapshot import LiveSnapshot
from ...models.summary import SeasonSummary
from ...services import LiveSnapshotService, SeasonService
from ..deps import (
    get_current_user_id,
    get_live_snapshot_service,
    get_season_service,
    get_timezone_offset,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class NextSeasonRequest(CamelModel):
    """Optional dates for the next season; defaults keep the previous duration."""
    season_start: Optional[datetime] = None
    season_end: Optional[datetime] = None


class AdjustHeartsRequest(CamelModel):
    target_player_id: str
    delta: int = Field(..., description="Non-zero heart change")
    reason: Optional[str] = Field(None, max_length=500)


class SuddenDeathRequest(CamelModel):
    enabled: bool


# =============================================================================
# Read Routes
# =============================================================================

@router.get("/seasons/{season_id}/live", response_model=LiveSnapshot)
async def get_live_snapshot(
    season_id: str,
    timezone_offset: Optional[int] = Depends(get_timezone_offset),
    service: LiveSnapshotService = Depends(get_live_snapshot_service),
):
    """
    Live view of a season.

    Settles expired disputes, hydrates every player, updates the pot and
    completes the season when a knockout or the end date is reached.
    Players whose data could not be loaded are returned degraded and
    listed under ``errors``.
    """
    return await service.get_snapshot(season_id, timezone_offset_minutes=timezone_offset)


@router.get("/seasons/{season_id}/summary", response_model=SeasonSummary)
async def get_season_summary(
    season_id: str,
    service: LiveSnapshotService = Depends(get_live_snapshot_service),
):
    """Frozen summary of a completed season."""
    summary = await service.get_summary(season_id)
    if summary is None:
        raise NotFoundError("SeasonSummary", season_id)
    return summary


# =============================================================================
# Lifecycle Routes
# =============================================================================

@router.post("/seasons/{season_id}/start", response_model=Season)
async def start_season(
    season_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SeasonService = Depends(get_season_service),
):
    """Start a PRE_STAGE season now (owner only)."""
    return await service.start_season(season_id, user_id)


@router.post("/seasons/{season_id}/spin-complete", response_model=Season)
async def complete_transition_spin(
    season_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SeasonService = Depends(get_season_service),
):
    return await service.finish_transition_spin(season_id, user_id)


@router.post("/seasons/{season_id}/next", response_model=Season)
async def start_next_season(
    season_id: str,
    request: Optional[NextSeasonRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: SeasonService = Depends(get_season_service),
):
    """Open the next season number after a completed season (owner only)."""
    request = request or NextSeasonRequest()
    return await service.start_next_season(
        season_id,
        user_id,
        season_start=request.season_start,
        season_end=request.season_end,
    )


# =============================================================================
# Ledger Routes
# =============================================================================

@router.post("/seasons/{season_id}/adjust-hearts", response_model=HeartAdjustment, status_code=201)
async def adjust_hearts(
    season_id: str,
    request: AdjustHeartsRequest,
    user_id: str = Depends(get_current_user_id),
    service: SeasonService = Depends(get_season_service),
):
    """Add or remove hearts for a member (owner only)."""
    return await service.adjust_hearts(
        season_id,
        user_id,
        request.target_player_id,
        request.delta,
        request.reason,
    )


@router.post("/seasons/{season_id}/players/{player_id}/sudden-death", response_model=Player)
async def set_sudden_death(
    season_id: str,
    player_id: str,
    request: SuddenDeathRequest,
    user_id: str = Depends(get_current_user_id),
    service: SeasonService = Depends(get_season_service),
):
    return await service.set_sudden_death(season_id, user_id, player_id, request.enabled)
