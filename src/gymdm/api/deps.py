"""Dependency injection for API routes."""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from ..config import Settings, get_settings
from ..db.repositories import SeasonRepository, get_season_repository
from ..exceptions import UnauthorizedError
from ..integrations.activity_source import ExternalActivitySource, StravaActivitySource
from ..services import (
    ActivityService,
    CommentaryDispatcher,
    HistoryEventSink,
    LiveSnapshotService,
    LoggingCommentarySink,
    PlayerStatsService,
    SeasonService,
    VoteService,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Infrastructure
# =============================================================================

def get_repository() -> SeasonRepository:
    """Get the season repository instance."""
    return get_season_repository()


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache
def get_activity_source() -> Optional[ExternalActivitySource]:
    """Get the external activity source (Strava)."""
    return StravaActivitySource()


def get_commentary(
    repository: SeasonRepository = Depends(get_repository),
) -> CommentaryDispatcher:
    """Commentary goes to the log and to the season history table."""
    return CommentaryDispatcher([LoggingCommentarySink(), HistoryEventSink(repository)])


# =============================================================================
# Caller context
# =============================================================================

def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """Caller identity, trusted from the upstream gateway."""
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError()
    return x_user_id.strip()


def get_timezone_offset(
    x_timezone_offset: Optional[int] = Header(None, alias="X-Timezone-Offset"),
) -> Optional[int]:
    """Caller's offset in minutes east of UTC; absent means UTC."""
    return x_timezone_offset


# =============================================================================
# Services
# =============================================================================

def get_vote_service(
    repository: SeasonRepository = Depends(get_repository),
    commentary: CommentaryDispatcher = Depends(get_commentary),
    settings: Settings = Depends(get_app_settings),
) -> VoteService:
    return VoteService(repository, commentary=commentary, settings=settings)


def get_season_service(
    repository: SeasonRepository = Depends(get_repository),
    commentary: CommentaryDispatcher = Depends(get_commentary),
    settings: Settings = Depends(get_app_settings),
) -> SeasonService:
    return SeasonService(repository, commentary=commentary, settings=settings)


def get_activity_service(
    repository: SeasonRepository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
) -> ActivityService:
    return ActivityService(repository, settings=settings)


def get_player_stats_service(
    repository: SeasonRepository = Depends(get_repository),
    source: Optional[ExternalActivitySource] = Depends(get_activity_source),
    settings: Settings = Depends(get_app_settings),
) -> PlayerStatsService:
    return PlayerStatsService(repository, source=source, settings=settings)


def get_live_snapshot_service(
    repository: SeasonRepository = Depends(get_repository),
    commentary: CommentaryDispatcher = Depends(get_commentary),
    settings: Settings = Depends(get_app_settings),
    stats_service: PlayerStatsService = Depends(get_player_stats_service),
    vote_service: VoteService = Depends(get_vote_service),
    season_service: SeasonService = Depends(get_season_service),
) -> LiveSnapshotService:
    return LiveSnapshotService(
        repository,
        stats_service=stats_service,
        vote_service=vote_service,
        season_service=season_service,
        commentary=commentary,
        settings=settings,
    )
