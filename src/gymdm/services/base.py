"""
Base service class.

Services share a repository, an optional commentary dispatcher, settings
and an injectable clock.
"""

import logging
from abc import ABC
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config import Settings, get_settings
from ..db.repositories.base import SeasonRepository
from ..exceptions import NotSeasonMemberError, SeasonNotFoundError
from ..models.season import Player, Season
from .commentary import CommentaryDispatcher, CommentaryEvent

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseService(ABC):
    """
    Abstract base class for all services.

    Provides common functionality:
    - Logging under the package logger, e.g. ``gymdm.services.vote_service.VoteService``
    - Clock injection
    - Season and membership lookups
    - Best-effort commentary dispatch
    """

    def __init__(
        self,
        repository: SeasonRepository,
        commentary: Optional[CommentaryDispatcher] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._repository = repository
        self._commentary = commentary or CommentaryDispatcher()
        self._settings = settings or get_settings()
        self._clock = clock or utc_now
        self._logger = logger or logging.getLogger(f"{type(self).__module__}.{type(self).__name__}")

    @property
    def logger(self) -> logging.Logger:
        """Get the logger instance."""
        return self._logger

    @property
    def repository(self) -> SeasonRepository:
        return self._repository

    @property
    def settings(self) -> Settings:
        return self._settings

    def now(self) -> datetime:
        return self._clock()

    async def _load_season(self, season_id: Optional[str]) -> Season:
        season = await self._repository.get_season(season_id) if season_id else None
        if season is None:
            raise SeasonNotFoundError(season_id or "")
        return season

    @staticmethod
    def _find_member(players: list[Player], user_id: Optional[str], season_id: str) -> Player:
        """Player linked to ``user_id``; raises when the user is not in the season."""
        for player in players:
            if user_id and player.user_id == user_id:
                return player
        raise NotSeasonMemberError(season_id)

    async def _emit(self, event: CommentaryEvent) -> None:
        await self._commentary.dispatch(event)
