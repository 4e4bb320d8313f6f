"""End-of-season summary: winners, losers, highlights and debts."""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..models.season import GameMode
from ..models.snapshot import PlayerStats
from ..models.summary import (
    ConsistencyHighlight,
    Debt,
    SeasonHighlights,
    SeasonSummary,
    StreakHighlight,
    SummaryPlayer,
    WorkoutsHighlight,
)
from ..rules.pot import round_money


def to_summary_player(player: PlayerStats) -> SummaryPlayer:
    return SummaryPlayer(
        id=player.player_id,
        name=player.name,
        hearts=player.hearts,
        total_workouts=player.total_workouts,
        current_streak=player.current_streak,
        longest_streak=player.longest_streak,
        points=player.points,
        in_sudden_death=player.in_sudden_death,
    )


def split_winners(
    players: Sequence[PlayerStats],
    mode: GameMode,
) -> Tuple[List[PlayerStats], List[PlayerStats]]:
    """
    Partition players into winners and losers for a game mode.

    - MONEY_SURVIVAL: everyone alive and not in sudden death wins.
    - MONEY_LAST_MAN: the best non-sudden-death player by hearts, then
      workouts, wins if alive; everyone else loses.
    - Challenge modes: everyone tied at the highest hearts wins.
    """
    if mode == GameMode.MONEY_SURVIVAL:
        winners = [p for p in players if p.hearts > 0 and not p.in_sudden_death]
    elif mode == GameMode.MONEY_LAST_MAN:
        contenders = sorted(
            (p for p in players if not p.in_sudden_death),
            key=lambda p: (-p.hearts, -p.total_workouts),
        )
        winners = contenders[:1] if contenders and contenders[0].hearts > 0 else []
    else:
        top = max((p.hearts for p in players), default=0)
        winners = [p for p in players if p.hearts == top]

    winner_ids = {p.player_id for p in winners}
    losers = [p for p in players if p.player_id not in winner_ids]
    return winners, losers


def build_highlights(players: Sequence[PlayerStats]) -> SeasonHighlights:
    highlights = SeasonHighlights()

    by_streak = [p for p in players if p.longest_streak > 0]
    if by_streak:
        best = max(by_streak, key=lambda p: p.longest_streak)
        highlights.longest_streak = StreakHighlight(
            player_id=best.player_id, player_name=best.name, streak=best.longest_streak
        )

    by_workouts = [p for p in players if p.total_workouts > 0]
    if by_workouts:
        best = max(by_workouts, key=lambda p: p.total_workouts)
        highlights.most_workouts = WorkoutsHighlight(
            player_id=best.player_id, player_name=best.name, count=best.total_workouts
        )

    by_average = [p for p in players if p.average_workouts_per_week > 0]
    if by_average:
        best = max(by_average, key=lambda p: p.average_workouts_per_week)
        highlights.most_consistent = ConsistencyHighlight(
            player_id=best.player_id, player_name=best.name, avg_per_week=best.average_workouts_per_week
        )

    return highlights


def compute_debts(
    winners: Sequence[PlayerStats],
    losers: Sequence[PlayerStats],
    final_pot: float,
) -> List[Debt]:
    """Each loser owes each winner an equal share of the pot, in cents."""
    if not winners or not losers or final_pot <= 0:
        return []
    share = round_money(final_pot / (len(losers) * len(winners)))
    return [
        Debt(
            from_player_id=loser.player_id,
            from_player_name=loser.name,
            to_player_id=winner.player_id,
            to_player_name=winner.name,
            amount=share,
        )
        for loser in losers
        for winner in winners
    ]


def generate_season_summary(
    players: Sequence[PlayerStats],
    mode: GameMode,
    final_pot: float,
    season_number: int,
    generated_at: Optional[datetime] = None,
) -> SeasonSummary:
    """Build the frozen summary for a completed season."""
    winners, losers = split_winners(players, mode)
    pot = round_money(final_pot) if mode.is_money else 0.0
    return SeasonSummary(
        season_number=season_number,
        mode=mode.value,
        winners=[to_summary_player(p) for p in winners],
        losers=[to_summary_player(p) for p in losers],
        highlights=build_highlights(players),
        final_pot=pot,
        debts=compute_debts(winners, losers, pot) if mode.is_money else [],
        generated_at=generated_at,
    )
