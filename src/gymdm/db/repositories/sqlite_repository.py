"""SQLite-backed repository for season state.

One connection per operation, opened inside a worker thread so the async
services never block the event loop. Conditional writes are single UPDATE
statements guarded by their precondition, which makes them safe across
processes sharing the same database file.
"""

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ...config import get_settings
from ...exceptions import StoreUnavailableError
from ...integrations.base import OAuthCredentials
from ...models.activity import Activity, ActivitySource, ActivityStatus, Vote, VoteChoice
from ...models.season import (
    GameMode,
    HeartAdjustment,
    Player,
    PotConfig,
    PotContribution,
    Season,
    SeasonStage,
)
from ...models.summary import SeasonSummary
from ..schema import SCHEMA
from .base import DisputeUpdate

logger = logging.getLogger(__name__)

R = TypeVar("R")


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteSeasonRepository:
    """
    SQLite implementation of ``SeasonRepository``.

    Handles:
    - Seasons, players and their stage transitions
    - Activities, dispute votes and optimistic dispute commits
    - Heart adjustment and pot contribution ledgers
    - Linked external credentials and the history event log
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the repository.

        Args:
            db_path: Path to SQLite database file. If None, uses the
                    configured ``GYMDM_DB_PATH``.
        """
        self.db_path = Path(db_path) if db_path else Path(get_settings().db_path)
        self._ensure_tables_exist()

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(str(self.db_path), timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_tables_exist(self) -> None:
        """Create the schema if it is missing."""
        try:
            with self._get_connection() as conn:
                conn.executescript(SCHEMA)
        except sqlite3.DatabaseError as e:
            raise StoreUnavailableError(
                f"Cannot initialize database at {self.db_path}",
                operation="init",
            ) from e

    async def _run(self, operation: str, fn: Callable[..., R], *args: Any) -> R:
        """Run a blocking store call in a worker thread and map driver errors."""
        try:
            return await asyncio.to_thread(partial(fn, *args))
        except sqlite3.DatabaseError as e:
            logger.error(f"SQLite {operation} failed: {e}")
            raise StoreUnavailableError(operation=operation, details={"reason": str(e)}) from e

    # =========================================================================
    # Row conversion
    # =========================================================================

    def _row_to_season(self, row: sqlite3.Row) -> Season:
        summary = None
        if row["summary_json"]:
            summary = SeasonSummary.model_validate_json(row["summary_json"])
        return Season(
            id=row["id"],
            name=row["name"],
            season_number=row["season_number"],
            season_start=_from_db_time(row["season_start"]),
            season_end=_from_db_time(row["season_end"]),
            scheduled_start=_from_db_time(row["scheduled_start"]),
            stage=SeasonStage(row["stage"]),
            mode=GameMode(row["mode"]),
            weekly_target=row["weekly_target"],
            initial_lives=row["initial_lives"],
            pot=PotConfig(
                initial_pot=row["initial_pot"],
                weekly_ante=row["weekly_ante"],
                scaling_enabled=bool(row["scaling_enabled"]),
                per_player_boost=row["per_player_boost"],
            ),
            sudden_death_enabled=bool(row["sudden_death_enabled"]),
            owner_user_id=row["owner_user_id"],
            summary=summary,
        )

    def _row_to_player(self, row: sqlite3.Row) -> Player:
        return Player(
            id=row["id"],
            season_id=row["season_id"],
            name=row["name"],
            user_id=row["user_id"],
            lives_remaining=row["lives_remaining"],
            sudden_death=bool(row["sudden_death"]),
            ready=bool(row["ready"]),
        )

    def _row_to_activity(self, row: sqlite3.Row) -> Activity:
        return Activity(
            id=row["id"],
            season_id=row["season_id"],
            player_id=row["player_id"],
            started_at=_from_db_time(row["started_at"]),
            name=row["name"],
            activity_type=row["activity_type"],
            duration_minutes=row["duration_minutes"],
            distance_km=row["distance_km"],
            source=ActivitySource(row["source"]),
            status=ActivityStatus(row["status"]),
            vote_deadline=_from_db_time(row["vote_deadline"]),
            decided_at=_from_db_time(row["decided_at"]),
            dispute_initiator_id=row["dispute_initiator_id"],
            decision_reason=row["decision_reason"],
            version=row["version"],
            created_at=_from_db_time(row["created_at"]),
        )

    def _row_to_credential(self, row: sqlite3.Row) -> OAuthCredentials:
        return OAuthCredentials(
            provider=row["provider"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expires_at=_from_db_time(row["expires_at"]),
            token_type=row["token_type"] or "Bearer",
            scope=row["scope"],
            user_id=row["user_id"],
            player_id=row["player_id"],
            athlete_id=row["athlete_id"],
            created_at=_from_db_time(row["created_at"]),
            updated_at=_from_db_time(row["updated_at"]),
        )

    # =========================================================================
    # Seasons
    # =========================================================================

    def _get_season(self, season_id: str) -> Optional[Season]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM seasons WHERE id = ?", (season_id,)).fetchone()
            return self._row_to_season(row) if row else None

    async def get_season(self, season_id: str) -> Optional[Season]:
        return await self._run("get_season", self._get_season, season_id)

    def _save_season(self, season: Season) -> Season:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO seasons (
                    id, name, season_number, season_start, season_end, scheduled_start,
                    stage, mode, weekly_target, initial_lives, initial_pot, weekly_ante,
                    scaling_enabled, per_player_boost, sudden_death_enabled, owner_user_id,
                    summary_json, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    season_number = excluded.season_number,
                    season_start = excluded.season_start,
                    season_end = excluded.season_end,
                    scheduled_start = excluded.scheduled_start,
                    stage = excluded.stage,
                    mode = excluded.mode,
                    weekly_target = excluded.weekly_target,
                    initial_lives = excluded.initial_lives,
                    initial_pot = excluded.initial_pot,
                    weekly_ante = excluded.weekly_ante,
                    scaling_enabled = excluded.scaling_enabled,
                    per_player_boost = excluded.per_player_boost,
                    sudden_death_enabled = excluded.sudden_death_enabled,
                    owner_user_id = excluded.owner_user_id,
                    summary_json = excluded.summary_json,
                    updated_at = excluded.updated_at
                """,
                (
                    season.id,
                    season.name,
                    season.season_number,
                    _to_db_time(season.season_start),
                    _to_db_time(season.season_end),
                    _to_db_time(season.scheduled_start),
                    season.stage.value,
                    season.mode.value,
                    season.weekly_target,
                    season.initial_lives,
                    season.pot.initial_pot,
                    season.pot.weekly_ante,
                    int(season.pot.scaling_enabled),
                    season.pot.per_player_boost,
                    int(season.sudden_death_enabled),
                    season.owner_user_id,
                    season.summary.model_dump_json() if season.summary else None,
                    _now(),
                ),
            )
        return season

    async def save_season(self, season: Season) -> Season:
        return await self._run("save_season", self._save_season, season)

    def _transition_stage(
        self,
        season_id: str,
        season_number: int,
        expected: SeasonStage,
        new_stage: SeasonStage,
        season_start: Optional[datetime],
        season_end: Optional[datetime],
    ) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE seasons SET
                    stage = ?,
                    season_start = COALESCE(?, season_start),
                    season_end = COALESCE(?, season_end),
                    updated_at = ?
                WHERE id = ? AND season_number = ? AND stage = ?
                """,
                (
                    new_stage.value,
                    _to_db_time(season_start),
                    _to_db_time(season_end),
                    _now(),
                    season_id,
                    season_number,
                    expected.value,
                ),
            )
            return cursor.rowcount == 1

    async def transition_stage(
        self,
        season_id: str,
        season_number: int,
        expected: SeasonStage,
        new_stage: SeasonStage,
        season_start: Optional[datetime] = None,
        season_end: Optional[datetime] = None,
    ) -> bool:
        return await self._run(
            "transition_stage",
            self._transition_stage,
            season_id,
            season_number,
            expected,
            new_stage,
            season_start,
            season_end,
        )

    def _freeze_summary(self, season_id: str, season_number: int, summary: SeasonSummary) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE seasons SET summary_json = ?, updated_at = ?
                WHERE id = ? AND season_number = ? AND summary_json IS NULL
                """,
                (summary.model_dump_json(), _now(), season_id, season_number),
            )
            return cursor.rowcount == 1

    async def freeze_summary(self, season_id: str, season_number: int, summary: SeasonSummary) -> bool:
        return await self._run("freeze_summary", self._freeze_summary, season_id, season_number, summary)

    # =========================================================================
    # Players
    # =========================================================================

    def _list_players(self, season_id: str) -> List[Player]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM players WHERE season_id = ? ORDER BY created_at, id",
                (season_id,),
            ).fetchall()
            return [self._row_to_player(row) for row in rows]

    async def list_players(self, season_id: str) -> List[Player]:
        return await self._run("list_players", self._list_players, season_id)

    def _get_player(self, player_id: str) -> Optional[Player]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM players WHERE id = ?", (player_id,)).fetchone()
            return self._row_to_player(row) if row else None

    async def get_player(self, player_id: str) -> Optional[Player]:
        return await self._run("get_player", self._get_player, player_id)

    def _save_player(self, player: Player) -> Player:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO players (id, season_id, name, user_id, lives_remaining, sudden_death, ready)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    season_id = excluded.season_id,
                    name = excluded.name,
                    user_id = excluded.user_id,
                    lives_remaining = excluded.lives_remaining,
                    sudden_death = excluded.sudden_death,
                    ready = excluded.ready
                """,
                (
                    player.id,
                    player.season_id,
                    player.name,
                    player.user_id,
                    player.lives_remaining,
                    int(player.sudden_death),
                    int(player.ready),
                ),
            )
        return player

    async def save_player(self, player: Player) -> Player:
        return await self._run("save_player", self._save_player, player)

    # =========================================================================
    # Activities and votes
    # =========================================================================

    def _get_activity(self, activity_id: str) -> Optional[Activity]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()
            return self._row_to_activity(row) if row else None

    async def get_activity(self, activity_id: str) -> Optional[Activity]:
        return await self._run("get_activity", self._get_activity, activity_id)

    def _save_activity(self, activity: Activity) -> Activity:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO activities (
                    id, season_id, player_id, started_at, name, activity_type,
                    duration_minutes, distance_km, source, status, vote_deadline,
                    decided_at, dispute_initiator_id, decision_reason, version, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    activity.id,
                    activity.season_id,
                    activity.player_id,
                    _to_db_time(activity.started_at),
                    activity.name,
                    activity.activity_type,
                    activity.duration_minutes,
                    activity.distance_km,
                    activity.source.value,
                    activity.status.value,
                    _to_db_time(activity.vote_deadline),
                    _to_db_time(activity.decided_at),
                    activity.dispute_initiator_id,
                    activity.decision_reason,
                    activity.version,
                    _to_db_time(activity.created_at) or _now(),
                ),
            )
        return activity

    async def save_activity(self, activity: Activity) -> Activity:
        return await self._run("save_activity", self._save_activity, activity)

    def _list_season_activities(
        self,
        season_id: str,
        statuses: Optional[List[ActivityStatus]],
        limit: int,
    ) -> List[Activity]:
        query = "SELECT * FROM activities WHERE season_id = ?"
        params: List[Any] = [season_id]
        if statuses:
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(s.value for s in statuses)
        query += " ORDER BY started_at DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_activity(row) for row in rows]

    async def list_season_activities(
        self,
        season_id: str,
        statuses: Optional[List[ActivityStatus]] = None,
        limit: int = 500,
    ) -> List[Activity]:
        return await self._run(
            "list_season_activities", self._list_season_activities, season_id, statuses, limit
        )

    def _list_votes(self, activity_id: str) -> List[Vote]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM activity_votes WHERE activity_id = ? ORDER BY created_at",
                (activity_id,),
            ).fetchall()
            return [
                Vote(
                    activity_id=row["activity_id"],
                    voter_player_id=row["voter_player_id"],
                    choice=VoteChoice(row["choice"]),
                    created_at=_from_db_time(row["created_at"]),
                )
                for row in rows
            ]

    async def list_votes(self, activity_id: str) -> List[Vote]:
        return await self._run("list_votes", self._list_votes, activity_id)

    def _commit_dispute(self, activity_id: str, expected_version: int, update: DisputeUpdate) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE activities SET
                    status = ?,
                    vote_deadline = ?,
                    decided_at = ?,
                    dispute_initiator_id = ?,
                    decision_reason = ?,
                    version = version + 1
                WHERE id = ? AND version = ?
                """,
                (
                    update.status.value,
                    _to_db_time(update.vote_deadline),
                    _to_db_time(update.decided_at),
                    update.dispute_initiator_id,
                    update.decision_reason,
                    activity_id,
                    expected_version,
                ),
            )
            if cursor.rowcount != 1:
                return False

            if update.clear_votes:
                conn.execute("DELETE FROM activity_votes WHERE activity_id = ?", (activity_id,))
            if update.delete_vote_of:
                conn.execute(
                    "DELETE FROM activity_votes WHERE activity_id = ? AND voter_player_id = ?",
                    (activity_id, update.delete_vote_of),
                )
            if update.upsert_vote is not None:
                vote = update.upsert_vote
                conn.execute(
                    """
                    INSERT INTO activity_votes (activity_id, voter_player_id, choice, created_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(activity_id, voter_player_id) DO UPDATE SET
                        choice = excluded.choice
                    """,
                    (activity_id, vote.voter_player_id, vote.choice.value, _to_db_time(vote.created_at) or _now()),
                )
            return True

    async def commit_dispute(self, activity_id: str, expected_version: int, update: DisputeUpdate) -> bool:
        return await self._run("commit_dispute", self._commit_dispute, activity_id, expected_version, update)

    # =========================================================================
    # Ledgers
    # =========================================================================

    def _add_heart_adjustment(self, adjustment: HeartAdjustment) -> HeartAdjustment:
        created_at = adjustment.created_at or datetime.now(timezone.utc)
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO heart_adjustments (
                    season_id, season_number, target_player_id, delta, reason,
                    created_by_user_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    adjustment.season_id,
                    adjustment.season_number,
                    adjustment.target_player_id,
                    adjustment.delta,
                    adjustment.reason,
                    adjustment.created_by_user_id,
                    _to_db_time(created_at),
                ),
            )
            return adjustment.model_copy(update={"id": cursor.lastrowid, "created_at": created_at})

    async def add_heart_adjustment(self, adjustment: HeartAdjustment) -> HeartAdjustment:
        return await self._run("add_heart_adjustment", self._add_heart_adjustment, adjustment)

    def _sum_heart_adjustments(self, season_id: str, season_number: int, player_id: str) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT COALESCE(SUM(delta), 0) AS total FROM heart_adjustments
                WHERE season_id = ? AND season_number = ? AND target_player_id = ?
                """,
                (season_id, season_number, player_id),
            ).fetchone()
            return int(row["total"])

    async def sum_heart_adjustments(self, season_id: str, season_number: int, player_id: str) -> int:
        return await self._run(
            "sum_heart_adjustments", self._sum_heart_adjustments, season_id, season_number, player_id
        )

    def _add_pot_contribution(self, contribution: PotContribution) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO pot_contributions (
                    season_id, season_number, week_start, amount, player_count
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    contribution.season_id,
                    contribution.season_number,
                    _to_db_time(contribution.week_start),
                    contribution.amount,
                    contribution.player_count,
                ),
            )
            return cursor.rowcount == 1

    async def add_pot_contribution(self, contribution: PotContribution) -> bool:
        return await self._run("add_pot_contribution", self._add_pot_contribution, contribution)

    def _list_pot_contributions(self, season_id: str, season_number: int) -> List[PotContribution]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM pot_contributions
                WHERE season_id = ? AND season_number = ?
                ORDER BY week_start
                """,
                (season_id, season_number),
            ).fetchall()
            return [
                PotContribution(
                    season_id=row["season_id"],
                    season_number=row["season_number"],
                    week_start=_from_db_time(row["week_start"]),
                    amount=row["amount"],
                    player_count=row["player_count"],
                )
                for row in rows
            ]

    async def list_pot_contributions(self, season_id: str, season_number: int) -> List[PotContribution]:
        return await self._run("list_pot_contributions", self._list_pot_contributions, season_id, season_number)

    # =========================================================================
    # External credentials
    # =========================================================================

    def _get_credential(self, column: str, owner_id: str) -> Optional[OAuthCredentials]:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT * FROM external_credentials WHERE {column} = ? ORDER BY updated_at DESC LIMIT 1",
                (owner_id,),
            ).fetchone()
            return self._row_to_credential(row) if row else None

    async def get_credential_for_user(self, user_id: str) -> Optional[OAuthCredentials]:
        return await self._run("get_credential_for_user", self._get_credential, "user_id", user_id)

    async def get_credential_for_player(self, player_id: str) -> Optional[OAuthCredentials]:
        return await self._run("get_credential_for_player", self._get_credential, "player_id", player_id)

    def _save_credential(self, credential: OAuthCredentials) -> OAuthCredentials:
        if not credential.user_id and not credential.player_id:
            raise ValueError("Credential must belong to a user or a player")
        with self._get_connection() as conn:
            if credential.user_id:
                conn.execute(
                    "DELETE FROM external_credentials WHERE provider = ? AND user_id = ?",
                    (credential.provider, credential.user_id),
                )
            if credential.player_id:
                conn.execute(
                    "DELETE FROM external_credentials WHERE provider = ? AND player_id = ?",
                    (credential.provider, credential.player_id),
                )
            conn.execute(
                """
                INSERT INTO external_credentials (
                    provider, user_id, player_id, access_token, refresh_token, expires_at,
                    token_type, scope, athlete_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    credential.provider,
                    credential.user_id,
                    credential.player_id,
                    credential.access_token,
                    credential.refresh_token,
                    _to_db_time(credential.expires_at),
                    credential.token_type,
                    credential.scope,
                    credential.athlete_id,
                    _to_db_time(credential.created_at),
                    _now(),
                ),
            )
        return credential

    async def save_credential(self, credential: OAuthCredentials) -> OAuthCredentials:
        return await self._run("save_credential", self._save_credential, credential)

    # =========================================================================
    # History
    # =========================================================================

    def _add_history_event(self, season_id: str, event_type: str, payload: Dict[str, Any]) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO history_events (season_id, event_type, payload_json, created_at) VALUES (?, ?, ?, ?)",
                (season_id, event_type, json.dumps(payload, default=str), _now()),
            )
            return cursor.lastrowid

    async def add_history_event(self, season_id: str, event_type: str, payload: Dict[str, Any]) -> int:
        return await self._run("add_history_event", self._add_history_event, season_id, event_type, payload)

    def _list_history_events(self, season_id: str, limit: int) -> List[Dict[str, Any]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM history_events WHERE season_id = ? ORDER BY id DESC LIMIT ?",
                (season_id, limit),
            ).fetchall()
            return [
                {
                    "id": row["id"],
                    "season_id": row["season_id"],
                    "event_type": row["event_type"],
                    "payload": json.loads(row["payload_json"]),
                    "created_at": row["created_at"],
                }
                for row in rows
            ]

    async def list_history_events(self, season_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        return await self._run("list_history_events", self._list_history_events, season_id, limit)


# Singleton instance for dependency injection
_season_repository: Optional[SqliteSeasonRepository] = None


def get_season_repository() -> SqliteSeasonRepository:
    """Get or create the singleton SqliteSeasonRepository instance."""
    global _season_repository
    if _season_repository is None:
        _season_repository = SqliteSeasonRepository()
    return _season_repository
