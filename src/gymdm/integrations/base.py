"""
Base classes for external activity integrations.

Provides the shared error types, stored OAuth credentials and the abstract
client every provider implements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntegrationError(Exception):
    """Base exception for integration errors."""

    def __init__(self, message: str, provider: str = "", code: Optional[str] = None):
        self.provider = provider
        self.code = code
        super().__init__(message)


class RateLimitError(IntegrationError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str,
        provider: str,
        retry_after: Optional[int] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, provider, "rate_limit")


class AuthenticationError(IntegrationError):
    """Authentication failed or expired."""
    pass


@dataclass
class OAuthCredentials:
    """
    OAuth credentials linking a user or player to a provider account.
    """
    provider: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None

    # Owner inside gymdm; at least one is set
    user_id: Optional[str] = None
    player_id: Optional[str] = None

    # Provider-side account
    athlete_id: Optional[str] = None

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


class IntegrationClient(ABC):
    """
    Abstract base class for integration API clients.
    """

    provider: str = "base"
    base_url: str = ""

    def __init__(self, credentials: OAuthCredentials):
        self.credentials = credentials

    def get_auth_headers(self) -> Dict[str, str]:
        """Get authorization headers for API requests."""
        return {
            "Authorization": f"{self.credentials.token_type} {self.credentials.access_token}",
        }

    @abstractmethod
    async def get_activities(
        self,
        after: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[Any]:
        """Get the athlete's activities, newest first."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying HTTP resources."""
        pass
