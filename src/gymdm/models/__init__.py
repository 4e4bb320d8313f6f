"""Domain models for the gymdm season engine."""

from .activity import (
    Activity,
    ActivitySource,
    ActivityStatus,
    DisputeOutcome,
    Vote,
    VoteChoice,
    VoteTally,
)
from .season import (
    GameMode,
    HeartAdjustment,
    Player,
    PotConfig,
    PotContribution,
    Season,
    SeasonStage,
)
from .snapshot import (
    ActivityCounts,
    ActivitySummary,
    KnockoutInfo,
    LiveSnapshot,
    PlayerError,
    PlayerStats,
    WeeklyEvent,
)
from .summary import (
    ConsistencyHighlight,
    Debt,
    SeasonHighlights,
    SeasonSummary,
    StreakHighlight,
    SummaryPlayer,
    WorkoutsHighlight,
)

__all__ = [
    # Activities and disputes
    "Activity",
    "ActivitySource",
    "ActivityStatus",
    "DisputeOutcome",
    "Vote",
    "VoteChoice",
    "VoteTally",
    # Seasons
    "GameMode",
    "HeartAdjustment",
    "Player",
    "PotConfig",
    "PotContribution",
    "Season",
    "SeasonStage",
    # Snapshot
    "ActivityCounts",
    "ActivitySummary",
    "KnockoutInfo",
    "LiveSnapshot",
    "PlayerError",
    "PlayerStats",
    "WeeklyEvent",
    # Summary
    "ConsistencyHighlight",
    "Debt",
    "SeasonHighlights",
    "SeasonSummary",
    "StreakHighlight",
    "SummaryPlayer",
    "WorkoutsHighlight",
]
