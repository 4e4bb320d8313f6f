"""
Activity dispute API routes.

Members vote ``legit`` / ``sus`` on each other's workouts, or ``remove``
their vote; the season owner can override any decision.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ...models.activity import DisputeOutcome
from ...models.base import CamelModel
from ...services import VoteService
from ..deps import get_current_user_id, get_vote_service

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class VoteRequest(CamelModel):
    """Request model for casting a vote."""
    choice: str = Field(..., description="legit, sus or remove")


class OverrideRequest(CamelModel):
    """Request model for an owner override."""
    new_status: str = Field(..., description="approved or rejected")
    reason: Optional[str] = Field(None, max_length=500)


# =============================================================================
# API Routes
# =============================================================================

@router.post("/activities/{activity_id}/vote", response_model=DisputeOutcome)
async def cast_vote(
    activity_id: str,
    request: VoteRequest,
    user_id: str = Depends(get_current_user_id),
    service: VoteService = Depends(get_vote_service),
):
    """
    Vote on another member's activity.

    The first vote on an approved activity opens a dispute with a voting
    window. ``remove`` by the dispute initiator or the season owner cancels
    the dispute; from anyone else it withdraws their own vote.
    """
    return await service.cast_vote(activity_id, user_id, request.choice)


@router.post("/activities/{activity_id}/override", response_model=DisputeOutcome)
async def override_decision(
    activity_id: str,
    request: OverrideRequest,
    user_id: str = Depends(get_current_user_id),
    service: VoteService = Depends(get_vote_service),
):
    """Force an activity to approved or rejected (season owner only)."""
    return await service.override(activity_id, user_id, request.new_status, request.reason)
