"""Money-mode pot arithmetic."""

from datetime import datetime
from typing import List

from ..models.season import PotConfig
from .hearts import WEEK, as_utc


def compute_effective_weekly_ante(config: PotConfig, player_count: int) -> float:
    """
    Ante each surviving player pays per week.

    With scaling enabled every player beyond the first adds
    ``per_player_boost`` to the base ante.
    """
    base = config.weekly_ante or 0.0
    boost = (config.per_player_boost or 0.0) * max(player_count - 1, 0) if config.scaling_enabled else 0.0
    return max(0.0, base + boost)


def weeks_since(start: datetime, now: datetime) -> int:
    """Whole weeks elapsed since ``start``; 0 if ``start`` is in the future."""
    elapsed = as_utc(now) - as_utc(start)
    if elapsed.total_seconds() <= 0:
        return 0
    return int(elapsed // WEEK)


def weekly_contribution_starts(season_start: datetime, until: datetime) -> List[datetime]:
    """
    Week keys (UTC midnight of the season's first day, plus whole weeks)
    for every fully elapsed week between the two times.
    """
    midnight = as_utc(season_start).replace(hour=0, minute=0, second=0, microsecond=0)
    return [midnight + WEEK * i for i in range(weeks_since(season_start, until))]


def round_money(amount: float) -> float:
    return round(amount, 2)
