"""
Player stats hydration.

Builds a ``PlayerStats`` for every season member from their manual and
external workouts. Players are hydrated concurrently; an external fetch
failure or timeout degrades that player only, while a store outage fails
the whole hydration.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..config import Settings
from ..db.repositories.base import SeasonRepository
from ..exceptions import StoreUnavailableError
from ..integrations.activity_source import ExternalActivitySource
from ..integrations.base import OAuthCredentials
from ..models.activity import Activity, ActivitySource, ActivityStatus
from ..models.season import Player, Season, SeasonStage
from ..models.snapshot import ActivityCounts, ActivitySummary, PlayerError, PlayerStats
from ..rules import (
    HeartsConfig,
    average_workouts_per_week,
    calculate_points,
    compute_weekly_hearts,
    current_streak,
    longest_streak,
    resolve_anchor,
)
from ..rules.hearts import as_utc
from .base import BaseService, Clock
from .commentary import CommentaryDispatcher

COUNTING_STATUSES = [ActivityStatus.APPROVED, ActivityStatus.PENDING]
RECENT_WEEKS = 4


@dataclass
class ManualActivityIndex:
    """Season manual activities grouped by player id and by linked user id."""

    by_player: Dict[str, List[Activity]] = field(default_factory=dict)
    by_user: Dict[str, List[Activity]] = field(default_factory=dict)

    def for_player(self, player: Player) -> List[Activity]:
        """Activities logged by the player or by any player sharing their user."""
        merged: List[Activity] = []
        seen = set()
        candidates = list(self.by_player.get(player.id, []))
        if player.user_id:
            candidates += self.by_user.get(player.user_id, [])
        for activity in candidates:
            if activity.id in seen:
                continue
            seen.add(activity.id)
            merged.append(activity)
        return merged


@dataclass
class HydrationResult:
    players: List[PlayerStats]
    errors: List[PlayerError] = field(default_factory=list)


def season_window_end(season: Season, now: datetime) -> datetime:
    """Upper bound of counted activity: the season end once it has passed, else now."""
    if season.season_end is not None and as_utc(season.season_end) < as_utc(now):
        return season.season_end
    return now


def to_activity_summary(activity: Activity) -> ActivitySummary:
    return ActivitySummary(
        id=activity.id,
        name=activity.name or activity.activity_type or "Workout",
        activity_type=activity.activity_type,
        started_at=activity.started_at,
        duration_minutes=activity.duration_minutes,
        distance_km=activity.distance_km,
        source=activity.source.value,
        status=activity.status.value,
    )


class PlayerStatsService(BaseService):
    """Computes per-player stats, hearts and recent activity."""

    def __init__(
        self,
        repository: SeasonRepository,
        source: Optional[ExternalActivitySource] = None,
        commentary: Optional[CommentaryDispatcher] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(repository, commentary=commentary, settings=settings, clock=clock)
        self._source = source

    async def prefetch_manual_activities(
        self,
        season_id: str,
        players: Sequence[Player],
    ) -> ManualActivityIndex:
        """Load the season's counting manual activities once for all players."""
        rows = await self.repository.list_season_activities(
            season_id,
            statuses=COUNTING_STATUSES,
            limit=self.settings.manual_activity_limit,
        )
        user_by_player = {p.id: p.user_id for p in players}
        index = ManualActivityIndex()
        for row in rows:
            if row.source != ActivitySource.MANUAL:
                continue
            index.by_player.setdefault(row.player_id, []).append(row)
            linked = user_by_player.get(row.player_id)
            if linked:
                index.by_user.setdefault(linked, []).append(row)
        return index

    async def _resolve_credential(self, player: Player) -> Optional[OAuthCredentials]:
        if player.user_id:
            credential = await self.repository.get_credential_for_user(player.user_id)
            if credential is not None:
                return credential
        return await self.repository.get_credential_for_player(player.id)

    async def _fetch_external(
        self,
        season: Season,
        player: Player,
        credential: Optional[OAuthCredentials],
    ) -> List[Activity]:
        if credential is None or self._source is None:
            return []
        fetched = await self._source.fetch_recent(credential, player.id, after=season.season_start)
        return [a.model_copy(update={"season_id": season.id}) for a in fetched]

    async def hydrate_player(
        self,
        season: Season,
        player: Player,
        manual: ManualActivityIndex,
        now: datetime,
        timezone_offset_minutes: int = 0,
    ) -> PlayerStats:
        """
        Compute one player's stats.

        Raises whatever the store or external source raises; the caller
        turns that into a degraded entry.
        """
        credential = await self._resolve_credential(player)
        max_hearts = season.initial_lives
        stats = PlayerStats(
            player_id=player.id,
            name=player.name,
            user_id=player.user_id,
            external_connected=credential is not None,
            hearts=max(0, min(player.lives_remaining, max_hearts)),
            max_hearts=max_hearts,
            weekly_target=season.weekly_target,
            sudden_death_opt_in=player.sudden_death,
        )

        if season.stage == SeasonStage.PRE_STAGE or season.season_start is None:
            # Stored placeholder until the season starts
            return stats

        external = await self._fetch_external(season, player, credential)
        combined = sorted(
            manual.for_player(player) + external,
            key=lambda a: as_utc(a.started_at),
            reverse=True,
        )

        start = as_utc(season.season_start)
        end = as_utc(season_window_end(season, now))
        in_season = [a for a in combined if start <= as_utc(a.started_at) <= end]
        times = [a.started_at for a in in_season]

        total = len(in_season)
        best_streak = longest_streak(times, timezone_offset_minutes)
        anchor = resolve_anchor(
            season.season_start,
            bool(in_season),
            end,
            grace_days=self.settings.late_join_grace_days,
        )
        weekly = compute_weekly_hearts(
            times,
            anchor,
            HeartsConfig(
                weekly_target=season.weekly_target,
                max_hearts=max_hearts,
                season_end=season.season_end,
            ),
            now=end,
            timezone_offset_minutes=timezone_offset_minutes,
        )

        adjustment = await self.repository.sum_heart_adjustments(season.id, season.season_number, player.id)
        hearts = max(0, min(weekly.hearts + adjustment, max_hearts))
        in_sudden_death = False
        if season.sudden_death_enabled and player.sudden_death and hearts == 0:
            hearts = 1
            in_sudden_death = True

        return stats.model_copy(
            update={
                "hearts": hearts,
                "heart_adjustment": adjustment,
                "total_workouts": total,
                "current_streak": current_streak(times, end, timezone_offset_minutes),
                "longest_streak": best_streak,
                "average_workouts_per_week": average_workouts_per_week(total, season.season_start, end),
                "points": calculate_points(total, best_streak),
                "in_sudden_death": in_sudden_death,
                "hearts_timeline": weekly.events,
                "recent_weeks": weekly.completed_events[-RECENT_WEEKS:],
                "recent_activities": [
                    to_activity_summary(a) for a in in_season[: self.settings.recent_activities_limit]
                ],
                "activity_counts": ActivityCounts(
                    total=total,
                    external=sum(1 for a in in_season if a.source == ActivitySource.EXTERNAL),
                    manual=sum(1 for a in in_season if a.source == ActivitySource.MANUAL),
                ),
            }
        )

    def _fallback(self, season: Season, player: Player) -> PlayerStats:
        return PlayerStats(
            player_id=player.id,
            name=player.name,
            user_id=player.user_id,
            external_connected=False,
            hearts=max(0, min(player.lives_remaining, season.initial_lives)),
            max_hearts=season.initial_lives,
            weekly_target=season.weekly_target,
            sudden_death_opt_in=player.sudden_death,
            degraded=True,
        )

    async def _hydrate_guarded(
        self,
        season: Season,
        player: Player,
        manual: ManualActivityIndex,
        now: datetime,
        timezone_offset_minutes: int,
    ) -> tuple[PlayerStats, Optional[PlayerError]]:
        try:
            async with asyncio.timeout(self.settings.external_fetch_timeout_seconds):
                stats = await self.hydrate_player(season, player, manual, now, timezone_offset_minutes)
            return stats, None
        except TimeoutError:
            self.logger.warning(f"Hydration timed out for player {player.id} in season {season.id}")
            return self._fallback(season, player), PlayerError(player_id=player.id, reason="timeout")
        except StoreUnavailableError:
            # A store outage fails the whole read, it is not degraded data
            raise
        except Exception as e:
            self.logger.warning(f"Hydration failed for player {player.id} in season {season.id}: {e!r}")
            return self._fallback(season, player), PlayerError(player_id=player.id, reason="fetch_failed")

    async def hydrate_players(
        self,
        season: Season,
        players: Sequence[Player],
        now: Optional[datetime] = None,
        timezone_offset_minutes: int = 0,
    ) -> HydrationResult:
        """
        Hydrate all players concurrently.

        External-source failures and timeouts degrade one player without
        aborting the join; a ``StoreUnavailableError`` propagates.
        """
        now = now or self.now()
        manual = await self.prefetch_manual_activities(season.id, players)
        results = await asyncio.gather(
            *(self._hydrate_guarded(season, p, manual, now, timezone_offset_minutes) for p in players)
        )
        return HydrationResult(
            players=[stats for stats, _ in results],
            errors=[error for _, error in results if error is not None],
        )
