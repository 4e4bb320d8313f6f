"""Activity, vote and dispute models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from .base import CamelModel


class ActivitySource(str, Enum):
    """Where a workout came from."""
    MANUAL = "manual"
    EXTERNAL = "external"


class ActivityStatus(str, Enum):
    """Dispute status of a logged workout."""
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"

    @property
    def counts(self) -> bool:
        """Whether a workout with this status counts toward stats and hearts."""
        return self in (ActivityStatus.APPROVED, ActivityStatus.PENDING)


class VoteChoice(str, Enum):
    """What a voter can send. ``remove`` is an action, never stored."""
    LEGIT = "legit"
    SUS = "sus"
    REMOVE = "remove"


class Activity(CamelModel):
    """A logged workout, manual or pulled from an external source."""

    id: str
    season_id: Optional[str] = None
    player_id: str
    started_at: datetime
    name: Optional[str] = None
    activity_type: str = "Workout"
    duration_minutes: float = Field(default=0.0, ge=0)
    distance_km: float = Field(default=0.0, ge=0)
    source: ActivitySource = ActivitySource.MANUAL
    status: ActivityStatus = ActivityStatus.APPROVED
    vote_deadline: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    dispute_initiator_id: Optional[str] = None
    decision_reason: Optional[str] = None
    version: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None

    @property
    def is_decided(self) -> bool:
        return self.decided_at is not None


class Vote(CamelModel):
    """A stored dispute vote, unique per (activity, voter)."""

    activity_id: str
    voter_player_id: str
    choice: VoteChoice
    created_at: Optional[datetime] = None

    @field_validator("choice")
    @classmethod
    def validate_choice(cls, v: VoteChoice) -> VoteChoice:
        """Only legit and sus are stored."""
        if v == VoteChoice.REMOVE:
            raise ValueError("remove is not a storable vote choice")
        return v


class VoteTally(CamelModel):
    """Vote counts against the number of eligible voters."""

    legit: int = 0
    sus: int = 0
    eligible: int = 0

    @property
    def total(self) -> int:
        return self.legit + self.sus


class DisputeOutcome(CamelModel):
    """Result of a vote, a sweep or an override on one activity."""

    activity_id: str
    status: ActivityStatus
    decided: bool = False
    vote_deadline: Optional[datetime] = None
    tally: VoteTally = Field(default_factory=VoteTally)
    resolution: Optional[str] = Field(None, description="Why the status last changed")
