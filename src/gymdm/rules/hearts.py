"""Weekly hearts calculation.

Hearts start at the season maximum. The season is cut into 7-day windows
beginning on the local calendar day of the anchor. Each completed window is
judged against the weekly target: meeting it regains one heart (never above
the maximum), missing it costs one heart per missing workout (never below
zero). The window still in progress is reported but not judged.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional

from ..models.snapshot import WeeklyEvent

WEEK = timedelta(days=7)
LATE_JOIN_GRACE_DAYS = 2


@dataclass
class HeartsConfig:
    """Rule parameters for one season."""

    weekly_target: int
    max_hearts: int
    season_end: Optional[datetime] = None


@dataclass
class HeartsResult:
    """Final hearts plus the per-window breakdown."""

    hearts: int
    events: List[WeeklyEvent] = field(default_factory=list)

    @property
    def completed_events(self) -> List[WeeklyEvent]:
        return [e for e in self.events if e.completed]


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def local_day(ts: datetime, timezone_offset_minutes: int = 0) -> date:
    """
    Calendar day of a timestamp as seen by the caller.

    Args:
        ts: Timestamp (naive values are treated as UTC)
        timezone_offset_minutes: Minutes east of UTC

    Returns:
        The local date
    """
    return (as_utc(ts) + timedelta(minutes=timezone_offset_minutes)).date()


def resolve_anchor(
    season_start: datetime,
    has_season_activity: bool,
    now: datetime,
    grace_days: int = LATE_JOIN_GRACE_DAYS,
) -> datetime:
    """
    Pick the day the weekly windows are counted from.

    A player with no in-season activity whose season started more than
    ``grace_days`` ago is counted from ``now`` instead, so joining late does
    not cost hearts for weeks they could not play.
    """
    if not has_season_activity and as_utc(now) - as_utc(season_start) > timedelta(days=grace_days):
        return now
    return season_start


def compute_weekly_hearts(
    activity_times: Iterable[datetime],
    anchor: datetime,
    config: HeartsConfig,
    now: datetime,
    timezone_offset_minutes: int = 0,
) -> HeartsResult:
    """
    Walk weekly windows from the anchor and apply gains and losses.

    Pure function of its arguments; ``now`` is never read from the clock.

    Args:
        activity_times: Start times of counting workouts, already restricted
            to the season
        anchor: Day the first window starts on (see ``resolve_anchor``)
        config: Weekly target, maximum hearts and optional season end
        now: Evaluation time
        timezone_offset_minutes: Caller's offset, minutes east of UTC

    Returns:
        HeartsResult with hearts in [0, max_hearts] and one event per window
    """
    max_hearts = max(0, config.max_hearts)
    target = config.weekly_target

    stop = as_utc(now)
    if config.season_end is not None:
        stop = min(stop, as_utc(config.season_end))
    stop_day = local_day(stop, timezone_offset_minutes)
    anchor_day = local_day(anchor, timezone_offset_minutes)

    days = sorted(local_day(ts, timezone_offset_minutes) for ts in activity_times)

    hearts = max_hearts
    events: List[WeeklyEvent] = []
    window_start = anchor_day
    while window_start <= stop_day:
        window_end = window_start + WEEK
        count = sum(1 for d in days if window_start <= d < window_end)
        completed = window_end <= stop_day
        met = target <= 0 or count >= target
        lost = gained = 0

        if completed and target > 0:
            if met:
                if hearts < max_hearts:
                    gained = 1
            else:
                lost = min(target - count, hearts, max_hearts)
            hearts = hearts + gained - lost

        events.append(
            WeeklyEvent(
                week_start=window_start,
                week_end=window_end,
                workouts=count,
                hearts_lost=lost,
                hearts_gained=gained,
                hearts_after=hearts,
                met=met,
                completed=completed,
            )
        )
        window_start = window_end

    return HeartsResult(hearts=max(0, min(hearts, max_hearts)), events=events)
