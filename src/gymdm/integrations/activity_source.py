"""External activity sources consumed by the player stats hydrator."""

import logging
from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

import httpx

from ..config import get_settings
from ..models.activity import Activity, ActivitySource, ActivityStatus
from .base import OAuthCredentials
from .strava import StravaActivity, StravaClient

logger = logging.getLogger(__name__)


@runtime_checkable
class ExternalActivitySource(Protocol):
    """Anything that can list a linked account's recent workouts."""

    async def fetch_recent(
        self,
        credential: OAuthCredentials,
        player_id: str,
        after: Optional[datetime] = None,
    ) -> List[Activity]:
        """Return recent workouts as approved external activities, newest first."""
        ...


def strava_to_activity(item: StravaActivity, player_id: str, season_id: Optional[str] = None) -> Activity:
    """Convert a Strava activity to an approved external Activity."""
    return Activity(
        id=f"strava:{item.id}",
        season_id=season_id,
        player_id=player_id,
        started_at=item.start_date,
        name=item.name,
        activity_type=item.sport_type,
        duration_minutes=item.duration_minutes,
        distance_km=item.distance_km,
        source=ActivitySource.EXTERNAL,
        status=ActivityStatus.APPROVED,
    )


class StravaActivitySource:
    """ExternalActivitySource backed by the Strava API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        limit: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.strava_base_url
        self.limit = limit or settings.external_fetch_limit
        # Shared client is borrowed, never closed here
        self._http_client = http_client

    async def fetch_recent(
        self,
        credential: OAuthCredentials,
        player_id: str,
        after: Optional[datetime] = None,
    ) -> List[Activity]:
        async with StravaClient(credential, base_url=self.base_url, http_client=self._http_client) as client:
            items = await client.get_activities(after=after, limit=self.limit)
        logger.debug("Fetched %d Strava activities for player %s", len(items), player_id)
        return [strava_to_activity(item, player_id) for item in items]
