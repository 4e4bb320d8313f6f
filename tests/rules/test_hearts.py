"""Tests for the weekly hearts rule engine."""

from datetime import date, datetime, timedelta, timezone

import pytest

from gymdm.rules import HeartsConfig, compute_weekly_hearts, resolve_anchor
from gymdm.rules.hearts import local_day

START = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def workouts_on(*day_offsets, hour=10):
    return [START + timedelta(days=d, hours=hour - 9) for d in day_offsets]


class TestWindows:
    """Tests for window layout."""

    def test_completed_and_in_progress_windows(self):
        """Four full weeks plus the window that starts today."""
        result = compute_weekly_hearts([], START, HeartsConfig(3, 3), now=START + timedelta(days=28))

        assert len(result.events) == 5
        assert [e.completed for e in result.events] == [True, True, True, True, False]
        assert result.events[0].week_start == date(2025, 3, 3)
        assert result.events[0].week_end == date(2025, 3, 10)

    def test_in_progress_window_not_judged(self):
        """A window that has not ended never changes hearts."""
        result = compute_weekly_hearts([], START, HeartsConfig(3, 3), now=START + timedelta(days=3))

        assert result.hearts == 3
        assert len(result.events) == 1
        assert result.events[0].completed is False
        assert result.events[0].hearts_lost == 0
        assert result.completed_events == []

    def test_season_end_stops_windows(self):
        """Windows after the season end are not evaluated."""
        config = HeartsConfig(3, 3, season_end=START + timedelta(days=14))
        result = compute_weekly_hearts([], START, config, now=START + timedelta(days=60))

        assert len(result.events) == 3
        assert len(result.completed_events) == 2

    def test_anchor_after_now_has_no_windows(self):
        result = compute_weekly_hearts([], START + timedelta(days=5), HeartsConfig(3, 3), now=START)

        assert result.events == []
        assert result.hearts == 3


class TestHeartChanges:
    """Tests for loss and gain rules."""

    def test_missed_week_loses_shortfall(self):
        """Two workouts against a target of three costs one heart."""
        result = compute_weekly_hearts(workouts_on(0, 1), START, HeartsConfig(3, 3), now=START + timedelta(days=7))

        week = result.events[0]
        assert week.workouts == 2
        assert week.met is False
        assert week.hearts_lost == 1
        assert result.hearts == 2

    def test_single_week_loss_capped(self):
        """A zero-workout week removes at most min(target, max hearts)."""
        result = compute_weekly_hearts([], START, HeartsConfig(5, 3), now=START + timedelta(days=7))

        assert result.events[0].hearts_lost == 3
        assert result.hearts == 0

    def test_met_week_regains_one_heart(self):
        times = workouts_on(0, 1, 7, 8, 9, 14, 15, 16)
        result = compute_weekly_hearts(times, START, HeartsConfig(3, 3), now=START + timedelta(days=21))

        lost, regained, at_max = result.completed_events
        assert lost.hearts_after == 2
        assert regained.hearts_gained == 1
        assert regained.hearts_after == 3
        assert at_max.met is True
        assert at_max.hearts_gained == 0
        assert result.hearts == 3

    def test_hearts_never_negative(self):
        result = compute_weekly_hearts([], START, HeartsConfig(3, 3), now=START + timedelta(days=70))

        assert result.hearts == 0
        for event in result.events:
            assert 0 <= event.hearts_after <= 3
        assert sum(e.hearts_lost for e in result.events) == 3

    def test_zero_target_never_changes_hearts(self):
        result = compute_weekly_hearts([], START, HeartsConfig(0, 3), now=START + timedelta(days=21))

        assert result.hearts == 3
        assert all(e.met for e in result.events)
        assert all(e.hearts_lost == 0 and e.hearts_gained == 0 for e in result.events)

    def test_deterministic(self):
        """Identical inputs give identical events and hearts."""
        times = workouts_on(0, 3, 9, 20)
        config = HeartsConfig(2, 3)
        now = START + timedelta(days=30)

        first = compute_weekly_hearts(times, START, config, now)
        second = compute_weekly_hearts(list(reversed(times)), START, config, now)

        assert first.hearts == second.hearts
        assert first.events == second.events


class TestTimezone:
    """Tests for local-day bucketing."""

    def test_local_day_uses_offset(self):
        ts = datetime(2025, 3, 9, 23, 30, tzinfo=timezone.utc)

        assert local_day(ts) == date(2025, 3, 9)
        assert local_day(ts, 60) == date(2025, 3, 10)
        assert local_day(datetime(2025, 3, 10, 0, 30), -60) == date(2025, 3, 9)

    def test_offset_moves_workout_between_windows(self):
        late_sunday = [datetime(2025, 3, 9, 23, 30, tzinfo=timezone.utc)]
        now = START + timedelta(days=14)

        utc = compute_weekly_hearts(late_sunday, START, HeartsConfig(1, 3), now)
        east = compute_weekly_hearts(late_sunday, START, HeartsConfig(1, 3), now, timezone_offset_minutes=60)

        assert [e.workouts for e in utc.completed_events] == [1, 0]
        assert [e.workouts for e in east.completed_events] == [0, 1]


class TestResolveAnchor:
    """Tests for the late-join anchor."""

    def test_anchor_moves_for_late_joiner(self):
        now = START + timedelta(days=10)
        assert resolve_anchor(START, has_season_activity=False, now=now) == now

    def test_anchor_kept_with_activity(self):
        now = START + timedelta(days=10)
        assert resolve_anchor(START, has_season_activity=True, now=now) == START

    @pytest.mark.parametrize("days", [0, 1, 2])
    def test_anchor_kept_within_grace(self, days):
        now = START + timedelta(days=days)
        assert resolve_anchor(START, has_season_activity=False, now=now) == START
