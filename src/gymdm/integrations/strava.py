"""
Strava integration for pulling recent workouts.

Implements:
- Activity listing for an authenticated athlete
- Waiting out 429 throttling via Retry-After
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from .base import (
    AuthenticationError,
    IntegrationClient,
    IntegrationError,
    OAuthCredentials,
    RateLimitError,
)

logger = logging.getLogger(__name__)

STRAVA_API_URL = "https://www.strava.com/api/v3"


@dataclass
class StravaActivity:
    """Strava activity summary as returned by ``/athlete/activities``."""
    id: int
    name: str
    sport_type: str
    start_date: datetime
    elapsed_time_sec: int
    moving_time_sec: int
    distance_m: float
    manual: bool = False

    @property
    def duration_minutes(self) -> float:
        return round(self.moving_time_sec / 60.0, 2)

    @property
    def distance_km(self) -> float:
        return round((self.distance_m or 0.0) / 1000.0, 3)

    @classmethod
    def from_api_response(cls, data: dict) -> "StravaActivity":
        """Parse from Strava API response."""
        raw_start = data.get("start_date") or data["start_date_local"]
        return cls(
            id=data["id"],
            name=data.get("name") or "Workout",
            sport_type=data.get("sport_type") or data.get("type") or "Workout",
            start_date=datetime.fromisoformat(raw_start.replace("Z", "+00:00")),
            elapsed_time_sec=data.get("elapsed_time", 0),
            moving_time_sec=data.get("moving_time", data.get("elapsed_time", 0)),
            distance_m=data.get("distance", 0) or 0,
            manual=data.get("manual", False),
        )


class StravaClient(IntegrationClient):
    """
    Client for Strava API v3.

    Usage:
        async with StravaClient(credentials) as client:
            activities = await client.get_activities(after=season_start)
    """

    provider = "strava"

    def __init__(
        self,
        credentials: OAuthCredentials,
        base_url: str = STRAVA_API_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        if credentials.provider != "strava":
            raise ValueError("Credentials must be for Strava")
        super().__init__(credentials)
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "StravaClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_json(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        max_attempts: int = 3,
    ) -> Any:
        """
        GET an endpoint, waiting out 429 responses.

        Raises:
            AuthenticationError: The token was refused
            RateLimitError: Still throttled after ``max_attempts``
            IntegrationError: Any other non-200 response
        """
        client = await self._get_client()
        url = f"{self.base_url}{endpoint}"

        for attempt in range(1, max_attempts + 1):
            response = await client.get(url, headers=self.get_auth_headers(), params=params)

            if response.status_code == 200:
                return response.json()
            if response.status_code == 401:
                raise AuthenticationError("Strava refused the access token", self.provider)
            if response.status_code != 429:
                raise IntegrationError(
                    f"Strava returned {response.status_code} for {endpoint}: {self._error_message(response)}",
                    self.provider,
                    str(response.status_code),
                )

            wait = self._retry_after(response)
            if attempt == max_attempts:
                raise RateLimitError("Strava rate limit exceeded", self.provider, wait)
            logger.info(f"Strava throttled {endpoint}, retrying in {min(wait, 60)}s (attempt {attempt})")
            await asyncio.sleep(min(wait, 60))

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or "no body"
        if isinstance(body, dict):
            return str(body.get("message", body))
        return str(body)

    @staticmethod
    def _retry_after(response: httpx.Response) -> int:
        """Seconds to wait from ``Retry-After``; a full 15-minute window when absent."""
        value = response.headers.get("Retry-After")
        return int(value) if value and value.isdigit() else 900

    async def get_activities(
        self,
        after: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[StravaActivity]:
        """
        Get athlete's activities, newest first.

        Args:
            after: Only activities starting after this time
            limit: Activities per page (max 200)

        Returns:
            List of StravaActivity objects; malformed entries are skipped
        """
        params: Dict[str, Any] = {"per_page": min(limit, 200), "page": 1}
        if after:
            params["after"] = int(after.timestamp())

        response = await self._get_json("/athlete/activities", params)

        activities = []
        if isinstance(response, list):
            for data in response:
                try:
                    activities.append(StravaActivity.from_api_response(data))
                except (KeyError, ValueError, TypeError, AttributeError):
                    bad_id = data.get("id") if isinstance(data, dict) else data
                    logger.debug(f"Skipping malformed Strava activity: {bad_id!r}")
                    continue

        activities.sort(key=lambda a: a.start_date, reverse=True)
        return activities
