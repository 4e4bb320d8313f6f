"""
Live season snapshot.

Every read recomputes the season from stored activity: it promotes a due
scheduled start, settles pending disputes, hydrates players, brings the pot
ledger up to date, detects knockout or completion and freezes the summary
of a completed season.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..config import Settings
from ..db.repositories.base import SeasonRepository
from ..models.season import GameMode, PotContribution, Season, SeasonStage
from ..models.snapshot import KnockoutInfo, LiveSnapshot, PlayerStats
from ..models.summary import SeasonSummary
from ..rules.hearts import as_utc
from ..rules.pot import compute_effective_weekly_ante, round_money, weekly_contribution_starts
from .base import BaseService, Clock
from .commentary import CommentaryDispatcher, CommentaryEvent, CommentaryEventType
from .player_stats_service import PlayerStatsService
from .season_service import SeasonService
from .season_summary import generate_season_summary
from .vote_service import VoteService


def detect_completion(
    season: Season,
    players: Sequence[PlayerStats],
    member_count: int,
    now: datetime,
) -> Optional[KnockoutInfo]:
    """
    Decide whether an ACTIVE season ends on this read.

    Degraded players are treated as alive: stale data never knocks anyone
    out.
    """
    if season.stage != SeasonStage.ACTIVE:
        return None

    contenders = [p for p in players if not p.in_sudden_death]
    if season.mode == GameMode.MONEY_SURVIVAL:
        knocked_out = [p for p in contenders if not p.degraded and p.hearts == 0]
        if knocked_out:
            return KnockoutInfo(
                kind="knockout",
                loser_player_ids=[p.player_id for p in knocked_out],
                occurred_at=now,
            )
    elif season.mode == GameMode.MONEY_LAST_MAN and member_count >= 2:
        alive = [p for p in contenders if p.degraded or p.hearts > 0]
        if len(alive) == 1 and not alive[0].degraded:
            return KnockoutInfo(
                kind="last_man_standing",
                winner_player_id=alive[0].player_id,
                loser_player_ids=[p.player_id for p in players if p.player_id != alive[0].player_id],
                occurred_at=now,
            )

    if season.season_end is not None and as_utc(now) >= as_utc(season.season_end):
        return KnockoutInfo(kind="season_end", occurred_at=now)
    return None


class LiveSnapshotService(BaseService):
    """Aggregates the full season view for one read."""

    def __init__(
        self,
        repository: SeasonRepository,
        stats_service: PlayerStatsService,
        vote_service: VoteService,
        season_service: SeasonService,
        commentary: Optional[CommentaryDispatcher] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(repository, commentary=commentary, settings=settings, clock=clock)
        self._stats = stats_service
        self._votes = vote_service
        self._seasons = season_service

    async def get_snapshot(
        self,
        season_id: str,
        now: Optional[datetime] = None,
        timezone_offset_minutes: Optional[int] = None,
    ) -> LiveSnapshot:
        """
        Build the live snapshot of a season.

        Args:
            season_id: Season to read
            now: Evaluation time, defaults to the service clock
            timezone_offset_minutes: Caller's offset east of UTC; None means UTC

        Returns:
            LiveSnapshot with hydrated players, pot, knockout info, summary
            and per-player errors

        Raises:
            SeasonNotFoundError: If the season does not exist
        """
        now = now or self.now()
        offset = timezone_offset_minutes or 0

        season = await self._load_season(season_id)
        players = await self.repository.list_players(season_id)

        season = await self._promote_scheduled(season, now)
        await self._votes.resolve_pending(season_id)

        hydration = await self._stats.hydrate_players(season, players, now, offset)

        # Degraded players carry stored placeholder hearts, so nothing
        # permanent is written from them: no pot weeks, completion or summary
        degraded = bool(hydration.errors)
        if degraded:
            self.logger.warning(
                f"Season {season_id} snapshot degraded for {len(hydration.errors)} player(s), "
                "ledger writes deferred: " + ", ".join(e.player_id for e in hydration.errors)
            )

        pot, ante = await self._update_pot(
            season, hydration.players, len(players), now, record=not degraded
        )

        knockout = None
        if not degraded:
            knockout = detect_completion(season, hydration.players, len(players), now)
            if knockout is not None:
                season = await self._complete(season, knockout, pot, now)

        summary = season.summary
        if season.stage == SeasonStage.COMPLETED and not degraded:
            summary = await self._ensure_summary(season, hydration.players, pot, now)

        return LiveSnapshot(
            season=season.model_copy(update={"summary": summary}) if summary else season,
            players=hydration.players,
            pot=pot,
            effective_weekly_ante=ante,
            summary=summary,
            knockout=knockout,
            errors=hydration.errors,
            generated_at=now,
        )

    async def _promote_scheduled(self, season: Season, now: datetime) -> Season:
        if (
            season.stage != SeasonStage.PRE_STAGE
            or season.scheduled_start is None
            or as_utc(season.scheduled_start) > as_utc(now)
        ):
            return season
        started = await self._seasons.begin(season, now)
        if started is None:
            return await self._load_season(season.id)
        self.logger.info(f"Scheduled start reached for season {season.id}")
        return started

    async def _update_pot(
        self,
        season: Season,
        players: List[PlayerStats],
        member_count: int,
        now: datetime,
        record: bool = True,
    ) -> Tuple[float, float]:
        """Record missing weekly contributions and return (pot, effective ante)."""
        if not season.mode.is_money:
            return 0.0, 0.0

        ante = compute_effective_weekly_ante(season.pot, member_count)
        if record and season.stage.in_play and season.season_start is not None:
            until = now
            if season.season_end is not None and as_utc(season.season_end) < as_utc(now):
                until = season.season_end
            existing = {
                as_utc(c.week_start)
                for c in await self.repository.list_pot_contributions(season.id, season.season_number)
            }
            survivors = sum(1 for p in players if p.hearts > 0)
            for week_start in weekly_contribution_starts(season.season_start, until):
                if week_start in existing:
                    continue
                await self.repository.add_pot_contribution(
                    PotContribution(
                        season_id=season.id,
                        season_number=season.season_number,
                        week_start=week_start,
                        amount=round_money(ante * survivors),
                        player_count=survivors,
                    )
                )

        contributions = await self.repository.list_pot_contributions(season.id, season.season_number)
        pot = season.pot.initial_pot + sum(c.amount for c in contributions)
        return round_money(pot), ante

    async def _complete(self, season: Season, knockout: KnockoutInfo, pot: float, now: datetime) -> Season:
        """Compare-and-set ACTIVE -> COMPLETED; only the winner of the write emits events."""
        season_end = now if knockout.kind != "season_end" else None
        won = await self.repository.transition_stage(
            season.id,
            season.season_number,
            SeasonStage.ACTIVE,
            SeasonStage.COMPLETED,
            season_end=season_end,
        )
        if won:
            self.logger.info(f"Season {season.id} #{season.season_number} completed ({knockout.kind})")
            payload = {
                "season_number": season.season_number,
                "current_pot": pot,
                "loser_player_ids": knockout.loser_player_ids,
                "winner_player_id": knockout.winner_player_id,
            }
            if knockout.kind == "knockout":
                await self._emit(CommentaryEvent(CommentaryEventType.SEASON_KO, season.id, payload, now))
            elif knockout.kind == "last_man_standing":
                await self._emit(CommentaryEvent(CommentaryEventType.SEASON_WINNER, season.id, payload, now))
            await self._emit(
                CommentaryEvent(CommentaryEventType.SEASON_COMPLETED, season.id, {**payload, "kind": knockout.kind}, now)
            )
        return await self._load_season(season.id)

    async def _ensure_summary(
        self,
        season: Season,
        players: List[PlayerStats],
        pot: float,
        now: datetime,
    ) -> SeasonSummary:
        """Return the frozen summary, generating and freezing it once."""
        if season.summary is not None:
            return season.summary

        summary = generate_season_summary(
            players,
            season.mode,
            pot,
            season.season_number,
            generated_at=now,
        )
        if await self.repository.freeze_summary(season.id, season.season_number, summary):
            self.logger.info(f"Season {season.id} #{season.season_number} summary frozen")
            return summary

        # Another reader froze it first
        stored = await self._load_season(season.id)
        return stored.summary or summary

    async def get_summary(self, season_id: str) -> Optional[SeasonSummary]:
        """Frozen summary of the current season number, if completed."""
        season = await self._load_season(season_id)
        return season.summary
