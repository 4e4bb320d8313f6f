"""
Storage protocol for season state.

Services depend on this protocol only. Conditional writes
(``commit_dispute``, ``transition_stage``, ``freeze_summary``) return
``False`` instead of raising when their precondition no longer holds, so the
caller can re-read and decide again.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ...integrations.base import OAuthCredentials
from ...models.activity import Activity, ActivityStatus, Vote
from ...models.season import HeartAdjustment, Player, PotContribution, Season, SeasonStage
from ...models.summary import SeasonSummary


@dataclass
class DisputeUpdate:
    """
    New dispute state for one activity plus the vote changes that go with it.

    Applied atomically by ``SeasonRepository.commit_dispute``.
    """

    status: ActivityStatus
    vote_deadline: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    dispute_initiator_id: Optional[str] = None
    decision_reason: Optional[str] = None
    upsert_vote: Optional[Vote] = None
    delete_vote_of: Optional[str] = None
    clear_votes: bool = False


@runtime_checkable
class SeasonRepository(Protocol):
    """Everything the engine reads and writes."""

    # Seasons
    async def get_season(self, season_id: str) -> Optional[Season]:
        ...

    async def save_season(self, season: Season) -> Season:
        """Insert or replace a season (summary included)."""
        ...

    async def transition_stage(
        self,
        season_id: str,
        season_number: int,
        expected: SeasonStage,
        new_stage: SeasonStage,
        season_start: Optional[datetime] = None,
        season_end: Optional[datetime] = None,
    ) -> bool:
        """Compare-and-set the stage; optionally rewrite the season dates."""
        ...

    async def freeze_summary(self, season_id: str, season_number: int, summary: SeasonSummary) -> bool:
        """Store the summary unless one is already stored."""
        ...

    # Players
    async def list_players(self, season_id: str) -> List[Player]:
        ...

    async def get_player(self, player_id: str) -> Optional[Player]:
        ...

    async def save_player(self, player: Player) -> Player:
        ...

    # Activities and votes
    async def get_activity(self, activity_id: str) -> Optional[Activity]:
        ...

    async def save_activity(self, activity: Activity) -> Activity:
        ...

    async def list_season_activities(
        self,
        season_id: str,
        statuses: Optional[List[ActivityStatus]] = None,
        limit: int = 500,
    ) -> List[Activity]:
        """Season activities newest first, optionally filtered by status."""
        ...

    async def list_votes(self, activity_id: str) -> List[Vote]:
        ...

    async def commit_dispute(self, activity_id: str, expected_version: int, update: DisputeUpdate) -> bool:
        """Apply ``update`` if the activity is still at ``expected_version``."""
        ...

    # Ledgers
    async def add_heart_adjustment(self, adjustment: HeartAdjustment) -> HeartAdjustment:
        ...

    async def sum_heart_adjustments(self, season_id: str, season_number: int, player_id: str) -> int:
        ...

    async def add_pot_contribution(self, contribution: PotContribution) -> bool:
        """Insert once; returns False when the week is already recorded."""
        ...

    async def list_pot_contributions(self, season_id: str, season_number: int) -> List[PotContribution]:
        ...

    # External credentials
    async def get_credential_for_user(self, user_id: str) -> Optional[OAuthCredentials]:
        ...

    async def get_credential_for_player(self, player_id: str) -> Optional[OAuthCredentials]:
        ...

    async def save_credential(self, credential: OAuthCredentials) -> OAuthCredentials:
        ...

    # History
    async def add_history_event(self, season_id: str, event_type: str, payload: Dict[str, Any]) -> int:
        ...

    async def list_history_events(self, season_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        ...
