"""External fitness data integrations."""

from .activity_source import ExternalActivitySource, StravaActivitySource, strava_to_activity
from .base import AuthenticationError, IntegrationError, OAuthCredentials, RateLimitError
from .strava import StravaActivity, StravaClient

__all__ = [
    "ExternalActivitySource",
    "StravaActivitySource",
    "strava_to_activity",
    "AuthenticationError",
    "IntegrationError",
    "OAuthCredentials",
    "RateLimitError",
    "StravaActivity",
    "StravaClient",
]
