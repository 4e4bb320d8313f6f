"""
Season lifecycle and owner ledger operations.

Stage changes are compare-and-set writes, so two callers racing to start or
advance a season cannot both succeed.
"""

from datetime import datetime, timedelta
from typing import Any, List, Optional

from ..exceptions import (
    ForbiddenError,
    InvalidHeartAdjustmentError,
    InvalidStageError,
    PlayerNotFoundError,
    ValidationError,
)
from ..models.season import GameMode, HeartAdjustment, Player, Season, SeasonStage
from .base import BaseService
from .commentary import CommentaryEvent, CommentaryEventType


def previous_duration(season: Season) -> Optional[timedelta]:
    if season.season_start is None or season.season_end is None:
        return None
    duration = season.season_end - season.season_start
    return duration if duration.total_seconds() > 0 else None


class SeasonService(BaseService):
    """Starts, advances and resets seasons; records owner heart adjustments."""

    def _require_owner(self, season: Season, user_id: Optional[str]) -> None:
        if not season.owner_user_id or season.owner_user_id != user_id:
            raise ForbiddenError("Owner only", {"season_id": season.id})

    def _require_stage(self, season: Season, expected: SeasonStage) -> None:
        if season.stage != expected:
            raise InvalidStageError(season.id, season.stage.value, expected.value)

    async def begin(self, season: Season, now: Optional[datetime] = None) -> Optional[Season]:
        """
        Move a PRE_STAGE season into play, keeping its configured duration.

        Roulette seasons go to TRANSITION_SPIN first. Returns the updated
        season, or None when another caller already moved it.
        """
        now = now or self.now()
        new_stage = (
            SeasonStage.TRANSITION_SPIN if season.mode == GameMode.CHALLENGE_ROULETTE else SeasonStage.ACTIVE
        )
        duration = previous_duration(season)
        season_end = now + duration if duration is not None else None

        moved = await self.repository.transition_stage(
            season.id,
            season.season_number,
            SeasonStage.PRE_STAGE,
            new_stage,
            season_start=now,
            season_end=season_end,
        )
        if not moved:
            return None

        self.logger.info(f"Season {season.id} #{season.season_number} started ({new_stage.value})")
        await self._emit(
            CommentaryEvent(
                type=CommentaryEventType.SEASON_STARTED,
                season_id=season.id,
                payload={"season_number": season.season_number, "stage": new_stage.value},
                occurred_at=now,
            )
        )
        return await self._load_season(season.id)

    async def start_season(self, season_id: str, requester_user_id: str) -> Season:
        season = await self._load_season(season_id)
        self._require_owner(season, requester_user_id)
        self._require_stage(season, SeasonStage.PRE_STAGE)
        started = await self.begin(season)
        if started is None:
            current = await self._load_season(season_id)
            raise InvalidStageError(season_id, current.stage.value, SeasonStage.PRE_STAGE.value)
        return started

    async def finish_transition_spin(self, season_id: str, requester_user_id: str) -> Season:
        """Close the roulette spin and make the season ACTIVE."""
        season = await self._load_season(season_id)
        self._require_owner(season, requester_user_id)
        self._require_stage(season, SeasonStage.TRANSITION_SPIN)
        moved = await self.repository.transition_stage(
            season.id, season.season_number, SeasonStage.TRANSITION_SPIN, SeasonStage.ACTIVE
        )
        if not moved:
            current = await self._load_season(season_id)
            raise InvalidStageError(season_id, current.stage.value, SeasonStage.TRANSITION_SPIN.value)
        return await self._load_season(season_id)

    async def start_next_season(
        self,
        season_id: str,
        requester_user_id: str,
        season_start: Optional[datetime] = None,
        season_end: Optional[datetime] = None,
    ) -> Season:
        """
        Open the next season number after a completed one.

        Ledgers are keyed by season number, so nothing is deleted. Without
        explicit dates the new season keeps the previous duration.
        """
        season = await self._load_season(season_id)
        self._require_owner(season, requester_user_id)
        self._require_stage(season, SeasonStage.COMPLETED)

        now = self.now()
        start = season_start or now
        if season_end is None:
            duration = previous_duration(season)
            season_end = start + duration if duration is not None else None
        if season_end is not None and season_end <= start:
            raise ValidationError("Season end must be after season start", field="season_end")

        # Claim the reset first so concurrent callers cannot both advance
        claimed = await self.repository.transition_stage(
            season.id, season.season_number, SeasonStage.COMPLETED, SeasonStage.PRE_STAGE
        )
        if not claimed:
            current = await self._load_season(season_id)
            raise InvalidStageError(season_id, current.stage.value, SeasonStage.COMPLETED.value)

        next_season = season.model_copy(
            update={
                "season_number": season.season_number + 1,
                "stage": SeasonStage.PRE_STAGE,
                "season_start": start,
                "season_end": season_end,
                "scheduled_start": None,
                "summary": None,
            }
        )
        await self.repository.save_season(next_season)

        players = await self.repository.list_players(season_id)
        for player in players:
            await self.repository.save_player(
                player.model_copy(
                    update={
                        "lives_remaining": season.initial_lives,
                        "sudden_death": False,
                        "ready": False,
                    }
                )
            )

        self.logger.info(f"Season {season_id} advanced to #{next_season.season_number}")
        return next_season

    async def adjust_hearts(
        self,
        season_id: str,
        requester_user_id: str,
        target_player_id: str,
        delta: Any,
        reason: Optional[str] = None,
    ) -> HeartAdjustment:
        """Append a manual heart change for a member (owner only)."""
        season = await self._load_season(season_id)
        self._require_owner(season, requester_user_id)

        max_delta = self.settings.heart_adjustment_max_delta
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0 or abs(delta) > max_delta:
            raise InvalidHeartAdjustmentError(delta, max_delta)

        players = await self.repository.list_players(season_id)
        target = next((p for p in players if p.id == target_player_id), None)
        if target is None:
            raise PlayerNotFoundError(target_player_id)

        adjustment = await self.repository.add_heart_adjustment(
            HeartAdjustment(
                season_id=season_id,
                season_number=season.season_number,
                target_player_id=target_player_id,
                delta=delta,
                reason=reason.strip() if reason and reason.strip() else None,
                created_by_user_id=requester_user_id,
                created_at=self.now(),
            )
        )
        await self._emit(
            CommentaryEvent(
                type=CommentaryEventType.HEARTS_ADJUSTED,
                season_id=season_id,
                payload={
                    "target_player_id": target_player_id,
                    "target_name": target.name,
                    "delta": delta,
                    "reason": adjustment.reason,
                },
                occurred_at=adjustment.created_at or self.now(),
            )
        )
        return adjustment

    async def set_sudden_death(
        self,
        season_id: str,
        requester_user_id: str,
        player_id: str,
        enabled: bool,
    ) -> Player:
        """Opt a player in or out of sudden death (the player or the owner)."""
        season = await self._load_season(season_id)
        players: List[Player] = await self.repository.list_players(season_id)
        player = next((p for p in players if p.id == player_id), None)
        if player is None:
            raise PlayerNotFoundError(player_id)

        is_owner = bool(season.owner_user_id) and season.owner_user_id == requester_user_id
        is_self = bool(player.user_id) and player.user_id == requester_user_id
        if not (is_owner or is_self):
            raise ForbiddenError("Only the player or the season owner can change sudden death")

        updated = player.model_copy(update={"sudden_death": bool(enabled)})
        return await self.repository.save_player(updated)
