"""
Tests for the live season snapshot.

Tests cover:
- Knockout, last-man-standing and season-end completion
- Degraded players never completing a season or writing the pot
- Store outages failing the read
- Scheduled start promotion
- Pot ledger updates
- Summary freezing
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import NOW, SEASON_START, log_workouts, make_activity, make_season, seed_season, weekly_workouts
from gymdm.db.repositories import DisputeUpdate
from gymdm.exceptions import StoreUnavailableError
from gymdm.integrations.base import OAuthCredentials
from gymdm.models import (
    ActivityStatus,
    GameMode,
    SeasonStage,
    SeasonSummary,
    Vote,
    VoteChoice,
)
from gymdm.services import (
    CommentaryDispatcher,
    CommentaryEventType,
    LiveSnapshotService,
    PlayerStatsService,
    SeasonService,
    VoteService,
)

CURRENT_WEEK = NOW - timedelta(hours=4)


@pytest.fixture
def sink():
    sink = AsyncMock()
    sink.publish = AsyncMock()
    return sink


@pytest.fixture
def source():
    source = AsyncMock()
    source.fetch_recent = AsyncMock(return_value=[])
    return source


@pytest.fixture
def service(repo, settings, clock, sink, source):
    commentary = CommentaryDispatcher([sink])
    kwargs = dict(commentary=commentary, settings=settings, clock=clock)
    return LiveSnapshotService(
        repo,
        stats_service=PlayerStatsService(repo, source=source, **kwargs),
        vote_service=VoteService(repo, **kwargs),
        season_service=SeasonService(repo, **kwargs),
        **kwargs,
    )


def event_types(sink):
    return [call.args[0].type for call in sink.publish.await_args_list]


async def seed_knockout(repo, mode=GameMode.MONEY_SURVIVAL, players=3):
    """p1..p(N-1) meet the target every week; the last player misses every past week."""
    await seed_season(repo, season=make_season(mode=mode), players=players)
    for i in range(1, players):
        await log_workouts(repo, f"p{i}", weekly_workouts())
    await repo.save_activity(make_activity("late", f"p{players}", CURRENT_WEEK))


class TestKnockout:
    """Tests for MONEY_SURVIVAL knockouts."""

    @pytest.mark.asyncio
    async def test_missed_weeks_knock_out_season(self, repo, service, sink):
        """3 players, target 3; one misses every week -> season completed, loser recorded."""
        await seed_knockout(repo)

        snapshot = await service.get_snapshot("s1")

        assert snapshot.knockout.kind == "knockout"
        assert snapshot.knockout.loser_player_ids == ["p3"]
        assert snapshot.season.stage == SeasonStage.COMPLETED
        assert snapshot.season.season_end == NOW
        hearts = {p.player_id: p.hearts for p in snapshot.players}
        assert hearts == {"p1": 3, "p2": 3, "p3": 0}
        assert event_types(sink) == [CommentaryEventType.SEASON_KO, CommentaryEventType.SEASON_COMPLETED]

    @pytest.mark.asyncio
    async def test_summary_and_debts(self, repo, service):
        await seed_knockout(repo)

        snapshot = await service.get_snapshot("s1")

        assert snapshot.pot == 80.0
        assert snapshot.effective_weekly_ante == 10.0
        summary = snapshot.summary
        assert {p.id for p in summary.winners} == {"p1", "p2"}
        assert [p.id for p in summary.losers] == ["p3"]
        assert summary.final_pot == 80.0
        assert sorted((d.from_player_id, d.to_player_id, d.amount) for d in summary.debts) == [
            ("p3", "p1", 40.0),
            ("p3", "p2", 40.0),
        ]
        assert summary.highlights.most_workouts.count == 12

    @pytest.mark.asyncio
    async def test_completion_emitted_once(self, repo, service, sink, clock):
        await seed_knockout(repo)

        first = await service.get_snapshot("s1")
        clock.advance(days=1)
        second = await service.get_snapshot("s1", now=clock.now)

        assert second.knockout is None
        assert second.summary == first.summary
        assert second.pot == first.pot
        assert event_types(sink).count(CommentaryEventType.SEASON_KO) == 1

    @pytest.mark.asyncio
    async def test_concurrent_reads_complete_once(self, repo, service, sink):
        await seed_knockout(repo)

        a, b = await asyncio.gather(service.get_snapshot("s1"), service.get_snapshot("s1"))

        assert a.season.stage == b.season.stage == SeasonStage.COMPLETED
        assert event_types(sink).count(CommentaryEventType.SEASON_KO) == 1
        assert len(await repo.list_pot_contributions("s1", 1)) == 4

    @pytest.mark.asyncio
    async def test_sudden_death_player_does_not_knock_out(self, repo, service):
        await seed_knockout(repo)
        season = await repo.get_season("s1")
        await repo.save_season(season.model_copy(update={"sudden_death_enabled": True}))
        p3 = await repo.get_player("p3")
        await repo.save_player(p3.model_copy(update={"sudden_death": True}))

        snapshot = await service.get_snapshot("s1")

        assert snapshot.knockout is None
        assert snapshot.season.stage == SeasonStage.ACTIVE
        p3_stats = next(p for p in snapshot.players if p.player_id == "p3")
        assert p3_stats.in_sudden_death is True


class TestOtherCompletions:
    """Tests for last-man-standing and season end."""

    @pytest.mark.asyncio
    async def test_last_man_standing(self, repo, service, sink):
        await seed_knockout(repo, mode=GameMode.MONEY_LAST_MAN, players=2)

        snapshot = await service.get_snapshot("s1")

        assert snapshot.knockout.kind == "last_man_standing"
        assert snapshot.knockout.winner_player_id == "p1"
        assert [p.id for p in snapshot.summary.winners] == ["p1"]
        assert snapshot.pot == 40.0
        assert CommentaryEventType.SEASON_WINNER in event_types(sink)

    @pytest.mark.asyncio
    async def test_season_end_completes_challenge(self, repo, service, sink):
        end = NOW - timedelta(days=1)
        await seed_season(
            repo,
            season=make_season(mode=GameMode.CHALLENGE_CUMULATIVE, season_end=end),
            players=2,
        )
        await log_workouts(repo, "p1", weekly_workouts())
        await log_workouts(repo, "p2", weekly_workouts(weeks=2))

        snapshot = await service.get_snapshot("s1")

        assert snapshot.knockout.kind == "season_end"
        assert snapshot.season.stage == SeasonStage.COMPLETED
        assert snapshot.season.season_end == end
        assert snapshot.pot == 0.0
        assert [p.id for p in snapshot.summary.winners] == ["p1"]
        assert snapshot.summary.debts == []
        assert event_types(sink) == [CommentaryEventType.SEASON_COMPLETED]

    @pytest.mark.asyncio
    async def test_active_season_keeps_running(self, repo, service):
        await seed_season(repo, players=2)
        await log_workouts(repo, "p1", weekly_workouts())
        await log_workouts(repo, "p2", weekly_workouts())

        snapshot = await service.get_snapshot("s1")

        assert snapshot.knockout is None
        assert snapshot.summary is None
        assert snapshot.season.stage == SeasonStage.ACTIVE


class TestDegradedPlayers:
    @pytest.mark.asyncio
    async def test_degraded_player_never_knocks_out(self, repo, service, source):
        await seed_season(repo, players=3)
        await log_workouts(repo, "p1", weekly_workouts())
        await log_workouts(repo, "p2", weekly_workouts())
        p3 = await repo.get_player("p3")
        await repo.save_player(p3.model_copy(update={"lives_remaining": 0}))
        await repo.save_credential(OAuthCredentials(provider="strava", access_token="t", user_id="u3"))
        source.fetch_recent.side_effect = RuntimeError("upstream 502")

        snapshot = await service.get_snapshot("s1")

        assert snapshot.knockout is None
        assert snapshot.season.stage == SeasonStage.ACTIVE
        assert [(e.player_id, e.reason) for e in snapshot.errors] == [("p3", "fetch_failed")]
        assert len(snapshot.players) == 3

    @pytest.mark.asyncio
    async def test_season_end_waits_for_clean_read(self, repo, service, source):
        season = make_season(mode=GameMode.CHALLENGE_CUMULATIVE, season_end=NOW - timedelta(days=1))
        await seed_season(repo, season=season, players=3)
        await log_workouts(repo, "p1", weekly_workouts())
        await log_workouts(repo, "p2", weekly_workouts())
        await repo.save_activity(make_activity("p3-w0", "p3", SEASON_START + timedelta(days=1)))
        await repo.save_credential(OAuthCredentials(provider="strava", access_token="t", user_id="u3"))
        source.fetch_recent.side_effect = RuntimeError("upstream 502")

        degraded = await service.get_snapshot("s1")

        assert degraded.season.stage == SeasonStage.ACTIVE
        assert degraded.knockout is None
        assert degraded.summary is None
        assert (await repo.get_season("s1")).summary is None

        source.fetch_recent.side_effect = None
        clean = await service.get_snapshot("s1")

        hearts = {p.player_id: p.hearts for p in clean.players}
        assert hearts["p3"] == 0
        assert clean.season.stage == SeasonStage.COMPLETED
        assert [w.id for w in clean.summary.winners] == ["p1", "p2"]
        assert [l.id for l in clean.summary.losers] == ["p3"]

    @pytest.mark.asyncio
    async def test_pot_weeks_not_recorded_while_degraded(self, repo, service, source):
        await seed_season(repo, players=3)
        for pid in ("p1", "p2", "p3"):
            await log_workouts(repo, pid, weekly_workouts())
        await repo.save_credential(OAuthCredentials(provider="strava", access_token="t", user_id="u3"))
        source.fetch_recent.side_effect = RuntimeError("upstream 502")

        await service.get_snapshot("s1")

        assert await repo.list_pot_contributions("s1", 1) == []

        source.fetch_recent.side_effect = None
        await service.get_snapshot("s1")

        assert await repo.list_pot_contributions("s1", 1) != []

    @pytest.mark.asyncio
    async def test_store_outage_fails_the_read(self, repo, service):
        await seed_season(repo, players=3)
        await log_workouts(repo, "p1", weekly_workouts())
        repo.sum_heart_adjustments = AsyncMock(
            side_effect=StoreUnavailableError(operation="sum_heart_adjustments")
        )

        with pytest.raises(StoreUnavailableError):
            await service.get_snapshot("s1")

        assert (await repo.get_season("s1")).stage == SeasonStage.ACTIVE


class TestReadSideEffects:
    """Tests for work done on read besides completion."""

    @pytest.mark.asyncio
    async def test_scheduled_start_promoted(self, repo, service, sink):
        season = make_season(stage=SeasonStage.PRE_STAGE, scheduled_start=NOW - timedelta(hours=1))
        await seed_season(repo, season=season, players=2)

        snapshot = await service.get_snapshot("s1")

        assert snapshot.season.stage == SeasonStage.ACTIVE
        assert snapshot.season.season_start == NOW
        assert snapshot.season.season_end == NOW + timedelta(days=56)
        assert CommentaryEventType.SEASON_STARTED in event_types(sink)

    @pytest.mark.asyncio
    async def test_scheduled_roulette_goes_to_spin(self, repo, service):
        season = make_season(
            stage=SeasonStage.PRE_STAGE,
            mode=GameMode.CHALLENGE_ROULETTE,
            scheduled_start=NOW - timedelta(minutes=5),
        )
        await seed_season(repo, season=season, players=2)

        snapshot = await service.get_snapshot("s1")

        assert snapshot.season.stage == SeasonStage.TRANSITION_SPIN

    @pytest.mark.asyncio
    async def test_future_schedule_left_alone(self, repo, service):
        season = make_season(stage=SeasonStage.PRE_STAGE, scheduled_start=NOW + timedelta(days=1))
        await seed_season(repo, season=season, players=2)

        snapshot = await service.get_snapshot("s1")

        assert snapshot.season.stage == SeasonStage.PRE_STAGE

    @pytest.mark.asyncio
    async def test_expired_dispute_settled(self, repo, service):
        await seed_season(repo, players=4)
        await log_workouts(repo, "p4", weekly_workouts())
        await repo.save_activity(make_activity("a1", "p4", NOW - timedelta(days=2), status=ActivityStatus.PENDING))
        await repo.commit_dispute(
            "a1",
            0,
            DisputeUpdate(
                status=ActivityStatus.PENDING,
                vote_deadline=NOW - timedelta(hours=1),
                dispute_initiator_id="p1",
                upsert_vote=Vote(activity_id="a1", voter_player_id="p1", choice=VoteChoice.LEGIT),
            ),
        )

        await service.get_snapshot("s1")

        stored = await repo.get_activity("a1")
        assert stored.status == ActivityStatus.APPROVED
        assert stored.decision_reason == "timeout"

    @pytest.mark.asyncio
    async def test_pot_contributions_written_once(self, repo, service):
        await seed_season(repo, players=2)
        await log_workouts(repo, "p1", weekly_workouts())
        await log_workouts(repo, "p2", weekly_workouts())

        first = await service.get_snapshot("s1")
        second = await service.get_snapshot("s1")

        contributions = await repo.list_pot_contributions("s1", 1)
        assert len(contributions) == 4
        assert contributions[0].week_start == SEASON_START.replace(hour=0)
        assert first.pot == second.pot == 80.0

    @pytest.mark.asyncio
    async def test_stored_summary_never_regenerated(self, repo, service):
        frozen = SeasonSummary(season_number=1, mode="MONEY_SURVIVAL", final_pot=999.0)
        await seed_season(repo, season=make_season(stage=SeasonStage.COMPLETED, summary=frozen), players=2)

        snapshot = await service.get_snapshot("s1")

        assert snapshot.summary.final_pot == 999.0
        assert (await service.get_summary("s1")).final_pot == 999.0
