"""Manual workout logging."""

import uuid
from datetime import datetime
from typing import Optional

from ..exceptions import ValidationError
from ..models.activity import Activity, ActivitySource, ActivityStatus
from .base import BaseService


class ActivityService(BaseService):
    """Stores manually logged workouts for season members."""

    async def log_manual_activity(
        self,
        season_id: str,
        user_id: str,
        duration_minutes: float,
        activity_type: str = "Workout",
        started_at: Optional[datetime] = None,
        distance_km: float = 0.0,
        name: Optional[str] = None,
    ) -> Activity:
        """
        Log a manual workout as an approved activity.

        Args:
            season_id: Season the workout counts toward
            user_id: Caller; must be a season member
            duration_minutes: Positive workout length
            activity_type: Free-form sport name
            started_at: Start time, defaults to now
            distance_km: Optional distance
            name: Optional title

        Returns:
            The stored activity
        """
        season = await self._load_season(season_id)
        players = await self.repository.list_players(season_id)
        player = self._find_member(players, user_id, season.id)

        if duration_minutes is None or duration_minutes <= 0:
            raise ValidationError("Duration must be positive", field="duration_minutes")
        if distance_km is not None and distance_km < 0:
            raise ValidationError("Distance cannot be negative", field="distance_km")

        now = self.now()
        activity = Activity(
            id=str(uuid.uuid4()),
            season_id=season.id,
            player_id=player.id,
            started_at=started_at or now,
            name=name,
            activity_type=(activity_type or "Workout").strip() or "Workout",
            duration_minutes=duration_minutes,
            distance_km=distance_km or 0.0,
            source=ActivitySource.MANUAL,
            status=ActivityStatus.APPROVED,
            created_at=now,
        )
        saved = await self.repository.save_activity(activity)
        self.logger.info(f"Manual activity {saved.id} logged by player {player.id} in season {season_id}")
        return saved
