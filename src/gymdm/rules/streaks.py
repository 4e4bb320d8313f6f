"""Daily streak and workload statistics."""

from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from .hearts import WEEK, as_utc, local_day

MIN_ELAPSED = timedelta(milliseconds=1)


def _unique_days(activity_times: Iterable[datetime], timezone_offset_minutes: int) -> List[date]:
    return sorted({local_day(ts, timezone_offset_minutes) for ts in activity_times})


def current_streak(
    activity_times: Iterable[datetime],
    now: datetime,
    timezone_offset_minutes: int = 0,
) -> int:
    """
    Consecutive local days with a workout, ending at the latest workout day.

    The streak is alive while the latest workout was today or yesterday;
    otherwise it is 0.
    """
    today = local_day(now, timezone_offset_minutes)
    days = [d for d in _unique_days(activity_times, timezone_offset_minutes) if d <= today]
    if not days or today - days[-1] > timedelta(days=1):
        return 0

    latest = days[-1]
    streak = 1
    expected = latest - timedelta(days=1)
    for day in reversed(days[:-1]):
        if day != expected:
            break
        streak += 1
        expected -= timedelta(days=1)
    return streak


def longest_streak(activity_times: Iterable[datetime], timezone_offset_minutes: int = 0) -> int:
    """Longest run of consecutive local days with at least one workout."""
    days = _unique_days(activity_times, timezone_offset_minutes)
    if not days:
        return 0
    best = cur = 1
    for prev, nxt in zip(days, days[1:]):
        if nxt - prev == timedelta(days=1):
            cur += 1
            best = max(best, cur)
        else:
            cur = 1
    return best


def average_workouts_per_week(
    total_workouts: int,
    season_start: Optional[datetime],
    until: datetime,
) -> float:
    """
    Workouts per week over the elapsed season.

    The span is floored at one millisecond, so a season a few days old
    reports its real weekly pace.
    """
    if season_start is None:
        return float(total_workouts)
    elapsed = max(as_utc(until) - as_utc(season_start), MIN_ELAPSED)
    return total_workouts / (elapsed / WEEK)
