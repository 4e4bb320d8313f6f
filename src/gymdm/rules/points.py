"""Leaderboard points."""


def calculate_points(total_workouts: int, longest_streak: int) -> int:
    """Points = workouts + best streak."""
    return max(0, total_workouts) + max(0, longest_streak)
