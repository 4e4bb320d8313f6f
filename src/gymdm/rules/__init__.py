"""Pure game rules: hearts, streaks, points and pot arithmetic."""

from .hearts import HeartsConfig, HeartsResult, compute_weekly_hearts, local_day, resolve_anchor
from .points import calculate_points
from .pot import compute_effective_weekly_ante, round_money, weekly_contribution_starts, weeks_since
from .streaks import average_workouts_per_week, current_streak, longest_streak

__all__ = [
    "HeartsConfig",
    "HeartsResult",
    "compute_weekly_hearts",
    "local_day",
    "resolve_anchor",
    "calculate_points",
    "compute_effective_weekly_ante",
    "round_money",
    "weekly_contribution_starts",
    "weeks_since",
    "average_workouts_per_week",
    "current_streak",
    "longest_streak",
]
