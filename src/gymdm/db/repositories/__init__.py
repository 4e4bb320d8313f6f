"""Season state repositories."""

from .base import DisputeUpdate, SeasonRepository
from .sqlite_repository import SqliteSeasonRepository, get_season_repository

__all__ = [
    "DisputeUpdate",
    "SeasonRepository",
    "SqliteSeasonRepository",
    "get_season_repository",
]
