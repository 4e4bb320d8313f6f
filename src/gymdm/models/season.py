"""Season, player and ledger models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .base import CamelModel
from .summary import SeasonSummary


class GameMode(str, Enum):
    """How a season is won and lost."""
    MONEY_SURVIVAL = "MONEY_SURVIVAL"
    MONEY_LAST_MAN = "MONEY_LAST_MAN"
    CHALLENGE_ROULETTE = "CHALLENGE_ROULETTE"
    CHALLENGE_CUMULATIVE = "CHALLENGE_CUMULATIVE"

    @property
    def is_money(self) -> bool:
        return self in (GameMode.MONEY_SURVIVAL, GameMode.MONEY_LAST_MAN)


class SeasonStage(str, Enum):
    """Season lifecycle stage. Advances monotonically within a season number."""
    PRE_STAGE = "PRE_STAGE"
    TRANSITION_SPIN = "TRANSITION_SPIN"  # roulette only, before ACTIVE
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"

    @property
    def in_play(self) -> bool:
        return self in (SeasonStage.ACTIVE, SeasonStage.TRANSITION_SPIN)


class PotConfig(CamelModel):
    """Money-mode pot settings."""

    initial_pot: float = Field(default=0.0, ge=0)
    weekly_ante: float = Field(default=10.0, ge=0)
    scaling_enabled: bool = Field(default=False, description="Boost the ante per extra player")
    per_player_boost: float = Field(default=0.0, ge=0)


class Season(CamelModel):
    """One run of the competition."""

    id: str
    name: str
    season_number: int = Field(default=1, ge=1)
    season_start: Optional[datetime] = None
    season_end: Optional[datetime] = None
    scheduled_start: Optional[datetime] = None
    stage: SeasonStage = SeasonStage.PRE_STAGE
    mode: GameMode = GameMode.MONEY_SURVIVAL
    weekly_target: int = Field(default=3, ge=0, description="Workouts required per week")
    initial_lives: int = Field(default=3, ge=1, description="Maximum hearts")
    pot: PotConfig = Field(default_factory=PotConfig)
    sudden_death_enabled: bool = False
    owner_user_id: Optional[str] = None
    summary: Optional[SeasonSummary] = None


class Player(CamelModel):
    """Membership of a person in a season."""

    id: str
    season_id: str
    name: str
    user_id: Optional[str] = None
    lives_remaining: int = Field(default=3, ge=0, description="Stored placeholder, shown before the season starts")
    sudden_death: bool = Field(default=False, description="Opted in to sudden-death revival")
    ready: bool = False


class HeartAdjustment(CamelModel):
    """Append-only manual heart change issued by the season owner."""

    id: Optional[int] = None
    season_id: str
    season_number: int = Field(default=1, ge=1)
    target_player_id: str
    delta: int
    reason: Optional[str] = None
    created_by_user_id: Optional[str] = None
    created_at: Optional[datetime] = None


class PotContribution(CamelModel):
    """One week's ante contribution to a money-mode pot."""

    season_id: str
    season_number: int = Field(default=1, ge=1)
    week_start: datetime
    amount: float = Field(default=0.0, ge=0)
    player_count: int = Field(default=0, ge=0)
