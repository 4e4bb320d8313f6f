"""Configuration settings for the gymdm season engine."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_ROOT = Path(__file__).parent.parent.parent  # repository root in a src layout


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (prefix ``GYMDM_``)."""

    model_config = SettingsConfigDict(
        env_prefix="GYMDM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    db_path: Path | None = None

    # Logging
    log_level: str = "INFO"

    # API
    cors_origins: list[str] = ["*"]
    api_prefix: str = "/api/v1"

    # Dispute voting
    vote_window_hours: int = 24
    voting_min_members: int = 3  # seasons with fewer members cannot vote
    reject_supermajority: float = 0.75
    vote_commit_max_attempts: int = 3

    # Hearts
    late_join_grace_days: int = 2
    heart_adjustment_max_delta: int = 3

    # Hydration
    external_fetch_timeout_seconds: float = 10.0
    external_fetch_limit: int = 50
    manual_activity_limit: int = 500
    recent_activities_limit: int = 5

    # Strava
    strava_base_url: str = "https://www.strava.com/api/v3"

    def model_post_init(self, __context) -> None:
        """Set the default database path after initialization."""
        if self.db_path is None:
            self.db_path = PACKAGE_ROOT / "gymdm.db"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
