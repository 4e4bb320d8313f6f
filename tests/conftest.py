"""Shared fixtures: temporary SQLite store, fixed clock and model factories."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from gymdm.config import Settings
from gymdm.db.repositories import SqliteSeasonRepository
from gymdm.models import (
    Activity,
    ActivitySource,
    ActivityStatus,
    GameMode,
    Player,
    Season,
    SeasonStage,
)

# A Monday; seasons in tests start four weeks earlier
NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)
SEASON_START = NOW - timedelta(days=28)


class FakeClock:
    """Settable clock injected into services."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def settings(temp_db_path):
    return Settings(
        db_path=temp_db_path,
        external_fetch_timeout_seconds=0.5,
    )


@pytest.fixture
def repo(temp_db_path):
    """Create a SqliteSeasonRepository with a temporary database."""
    return SqliteSeasonRepository(db_path=temp_db_path)


@pytest.fixture
def clock():
    return FakeClock()


def make_season(season_id: str = "s1", **overrides) -> Season:
    data = dict(
        id=season_id,
        name="Spring Grind",
        season_start=SEASON_START,
        season_end=SEASON_START + timedelta(days=56),
        stage=SeasonStage.ACTIVE,
        mode=GameMode.MONEY_SURVIVAL,
        weekly_target=3,
        initial_lives=3,
        owner_user_id="u1",
    )
    data.update(overrides)
    return Season(**data)


def make_player(index: int, season_id: str = "s1", **overrides) -> Player:
    data = dict(
        id=f"p{index}",
        season_id=season_id,
        name=f"Player {index}",
        user_id=f"u{index}",
        lives_remaining=3,
    )
    data.update(overrides)
    return Player(**data)


def make_activity(
    activity_id: str,
    player_id: str,
    started_at: datetime,
    season_id: str = "s1",
    status: ActivityStatus = ActivityStatus.APPROVED,
    **overrides,
) -> Activity:
    data = dict(
        id=activity_id,
        season_id=season_id,
        player_id=player_id,
        started_at=started_at,
        duration_minutes=45,
        source=ActivitySource.MANUAL,
        status=status,
    )
    data.update(overrides)
    return Activity(**data)


def weekly_workouts(weeks: int = 4, per_week: int = 3, start: datetime = SEASON_START):
    """Workout times on the first ``per_week`` days of each season week."""
    return [
        start + timedelta(days=7 * week + day, hours=1)
        for week in range(weeks)
        for day in range(per_week)
    ]


async def seed_season(
    repo,
    season: Optional[Season] = None,
    players: int = 3,
) -> Season:
    """Store a season and ``players`` members p1..pN (p1 is the owner)."""
    season = season or make_season()
    await repo.save_season(season)
    for i in range(1, players + 1):
        await repo.save_player(make_player(i, season_id=season.id))
    return season


async def log_workouts(repo, player_id: str, times, season_id: str = "s1", prefix: Optional[str] = None):
    prefix = prefix or player_id
    for i, ts in enumerate(times):
        await repo.save_activity(make_activity(f"{prefix}-w{i}", player_id, ts, season_id=season_id))
