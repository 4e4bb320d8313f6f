"""Season engine services."""

from .activity_service import ActivityService
from .base import BaseService, Clock, utc_now
from .commentary import (
    CommentaryDispatcher,
    CommentaryEvent,
    CommentaryEventType,
    CommentarySink,
    HistoryEventSink,
    LoggingCommentarySink,
)
from .live_snapshot_service import LiveSnapshotService, detect_completion
from .player_stats_service import HydrationResult, ManualActivityIndex, PlayerStatsService
from .season_service import SeasonService
from .season_summary import compute_debts, generate_season_summary, split_winners
from .vote_service import Resolution, VoteService, resolve_dispute, tally_votes

__all__ = [
    # Base
    "BaseService",
    "Clock",
    "utc_now",
    # Commentary
    "CommentaryDispatcher",
    "CommentaryEvent",
    "CommentaryEventType",
    "CommentarySink",
    "HistoryEventSink",
    "LoggingCommentarySink",
    # Services
    "ActivityService",
    "LiveSnapshotService",
    "PlayerStatsService",
    "SeasonService",
    "VoteService",
    # Helpers
    "HydrationResult",
    "ManualActivityIndex",
    "Resolution",
    "compute_debts",
    "detect_completion",
    "generate_season_summary",
    "resolve_dispute",
    "split_winners",
    "tally_votes",
]
