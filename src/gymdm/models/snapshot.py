"""Live snapshot models: per-player stats and the season view."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from .base import CamelModel
from .season import Season
from .summary import SeasonSummary


class WeeklyEvent(CamelModel):
    """One 7-day window of the hearts calculation."""

    week_start: date = Field(..., description="First local day of the window")
    week_end: date = Field(..., description="First local day after the window")
    workouts: int = Field(default=0, ge=0)
    hearts_lost: int = Field(default=0, ge=0)
    hearts_gained: int = Field(default=0, ge=0)
    hearts_after: int = Field(default=0, ge=0)
    met: bool = False
    completed: bool = Field(default=True, description="False for the window still in progress")


class ActivitySummary(CamelModel):
    """Compact activity line for recent-activity lists."""

    id: str
    name: str
    activity_type: str
    started_at: datetime
    duration_minutes: float = 0.0
    distance_km: float = 0.0
    source: str
    status: str


class ActivityCounts(CamelModel):
    total: int = 0
    external: int = 0
    manual: int = 0


class PlayerStats(CamelModel):
    """A player as seen by the live snapshot."""

    player_id: str
    name: str
    user_id: Optional[str] = None
    external_connected: bool = False
    hearts: int = Field(default=0, ge=0)
    max_hearts: int = Field(default=0, ge=0)
    weekly_target: int = Field(default=0, ge=0)
    heart_adjustment: int = Field(default=0, description="Sum of manual adjustments applied")
    total_workouts: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    average_workouts_per_week: float = 0.0
    points: int = 0
    sudden_death_opt_in: bool = False
    in_sudden_death: bool = False
    hearts_timeline: List[WeeklyEvent] = Field(default_factory=list)
    recent_weeks: List[WeeklyEvent] = Field(default_factory=list, description="Last four completed windows")
    recent_activities: List[ActivitySummary] = Field(default_factory=list)
    activity_counts: ActivityCounts = Field(default_factory=ActivityCounts)
    degraded: bool = Field(default=False, description="Stats could not be computed this read")


class PlayerError(CamelModel):
    """Soft per-player failure recorded during hydration."""

    player_id: str
    reason: str


class KnockoutInfo(CamelModel):
    """Why a season ended before, or at, its end date."""

    kind: str = Field(..., description="knockout, last_man_standing or season_end")
    loser_player_ids: List[str] = Field(default_factory=list)
    winner_player_id: Optional[str] = None
    occurred_at: datetime


class LiveSnapshot(CamelModel):
    """Full recomputed season state for one read."""

    season: Season
    players: List[PlayerStats] = Field(default_factory=list)
    pot: float = 0.0
    effective_weekly_ante: float = 0.0
    summary: Optional[SeasonSummary] = None
    knockout: Optional[KnockoutInfo] = None
    errors: List[PlayerError] = Field(default_factory=list)
    generated_at: datetime
