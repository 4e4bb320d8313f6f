"""Season summary models, generated once when a season completes."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import CamelModel


class SummaryPlayer(CamelModel):
    """A player's final line in the season summary."""

    id: str = Field(..., description="Player ID")
    name: str = Field(..., description="Display name")
    hearts: int = Field(default=0, description="Hearts at season end")
    total_workouts: int = Field(default=0, description="Counting workouts in the season")
    current_streak: int = Field(default=0, description="Streak in days at season end")
    longest_streak: int = Field(default=0, description="Longest daily streak in the season")
    points: int = Field(default=0, description="Workouts plus best streak")
    in_sudden_death: bool = Field(default=False, description="Finished the season revived")


class StreakHighlight(CamelModel):
    player_id: str
    player_name: str
    streak: int


class WorkoutsHighlight(CamelModel):
    player_id: str
    player_name: str
    count: int


class ConsistencyHighlight(CamelModel):
    player_id: str
    player_name: str
    avg_per_week: float


class SeasonHighlights(CamelModel):
    """Best-in-season awards; each is absent when nobody qualifies."""

    longest_streak: Optional[StreakHighlight] = None
    most_workouts: Optional[WorkoutsHighlight] = None
    most_consistent: Optional[ConsistencyHighlight] = None


class Debt(CamelModel):
    """What one losing player owes one winning player (money modes)."""

    from_player_id: str
    from_player_name: str
    to_player_id: str
    to_player_name: str
    amount: float


class SeasonSummary(CamelModel):
    """Frozen end-of-season result. Never recomputed once stored."""

    season_number: int = Field(..., ge=1)
    mode: str = Field(..., description="Game mode the season was played in")
    winners: List[SummaryPlayer] = Field(default_factory=list)
    losers: List[SummaryPlayer] = Field(default_factory=list)
    highlights: SeasonHighlights = Field(default_factory=SeasonHighlights)
    final_pot: float = Field(default=0.0)
    debts: List[Debt] = Field(default_factory=list)
    generated_at: Optional[datetime] = None
