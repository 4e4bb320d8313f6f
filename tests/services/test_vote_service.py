"""
Tests for dispute voting.

Tests cover:
- Opening, resolving and cancelling disputes
- Resolution rule precedence
- Voting permissions and closed disputes
- Optimistic commit retries
- Owner overrides
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import NOW, make_activity, make_season, seed_season
from gymdm.exceptions import (
    ActivityNotFoundError,
    ForbiddenError,
    InvalidOverrideStatusError,
    InvalidVoteChoiceError,
    NotSeasonMemberError,
    SelfVoteError,
    VoteConflictError,
    VotingClosedError,
    VotingDisabledError,
)
from gymdm.models import ActivityStatus, VoteTally
from gymdm.services import (
    CommentaryDispatcher,
    CommentaryEventType,
    VoteService,
    resolve_dispute,
)


@pytest.fixture
def sink():
    sink = AsyncMock()
    sink.publish = AsyncMock()
    return sink


@pytest.fixture
def service(repo, settings, clock, sink):
    return VoteService(repo, commentary=CommentaryDispatcher([sink]), settings=settings, clock=clock)


async def seed_dispute(repo, players: int = 5, author: str = "p5"):
    """Season with members p1..pN (p1 owns the season) and one activity by ``author``."""
    await seed_season(repo, players=players)
    await repo.save_activity(make_activity("a1", author, NOW - timedelta(days=1)))


def event_types(sink):
    return [call.args[0].type for call in sink.publish.await_args_list]


# ============================================================================
# Resolution rule
# ============================================================================

class TestResolveDispute:
    """Tests for the pure resolution rule."""

    deadline = NOW + timedelta(hours=12)

    def resolve(self, legit, sus, eligible, deadline=None, now=NOW):
        return resolve_dispute(
            ActivityStatus.PENDING,
            VoteTally(legit=legit, sus=sus, eligible=eligible),
            deadline or self.deadline,
            now,
        )

    def test_supermajority_rejects(self):
        """4 eligible, 3 sus / 1 legit -> rejected."""
        result = self.resolve(1, 3, 4)
        assert result.status == ActivityStatus.REJECTED
        assert result.reason == "supermajority"
        assert result.terminal is True

    def test_unanimous_single_voter_rejects(self):
        result = self.resolve(0, 1, 1)
        assert result.status == ActivityStatus.REJECTED
        assert result.reason == "unanimous"

    def test_majority_tie_approves(self):
        result = self.resolve(1, 1, 3)
        assert result.status == ActivityStatus.APPROVED
        assert result.reason == "majority"

    def test_majority_rejects(self):
        assert self.resolve(1, 1, 5) is None
        result = self.resolve(1, 2, 5)
        assert result.status == ActivityStatus.REJECTED

    def test_open_dispute_unresolved(self):
        assert self.resolve(1, 0, 4) is None

    def test_timeout_approves_before_vote_rules(self):
        result = self.resolve(0, 2, 3, now=self.deadline)
        assert result.status == ActivityStatus.APPROVED
        assert result.reason == "timeout"

    def test_no_votes_fizzles(self):
        result = self.resolve(0, 0, 4)
        assert result.status == ActivityStatus.APPROVED
        assert result.reason == "fizzled"
        assert result.terminal is False

    def test_no_eligible_voters(self):
        assert self.resolve(0, 0, 0) is None

    def test_non_pending_unchanged(self):
        tally = VoteTally(legit=0, sus=3, eligible=3)
        assert resolve_dispute(ActivityStatus.APPROVED, tally, self.deadline, NOW) is None


# ============================================================================
# Casting votes
# ============================================================================

class TestCastVote:
    """Tests for VoteService.cast_vote."""

    @pytest.mark.asyncio
    async def test_first_vote_opens_dispute(self, repo, service, sink):
        await seed_dispute(repo)

        outcome = await service.cast_vote("a1", "u2", "sus")

        assert outcome.status == ActivityStatus.PENDING
        assert outcome.decided is False
        assert outcome.vote_deadline == NOW + timedelta(hours=24)
        assert outcome.tally.sus == 1
        assert outcome.tally.eligible == 4
        stored = await repo.get_activity("a1")
        assert stored.dispute_initiator_id == "p2"
        assert event_types(sink) == [CommentaryEventType.VOTE_STARTED]

    @pytest.mark.asyncio
    async def test_supermajority_decides(self, repo, service, sink):
        await seed_dispute(repo)

        await service.cast_vote("a1", "u1", "sus")
        await service.cast_vote("a1", "u2", "sus")
        outcome = await service.cast_vote("a1", "u3", "sus")

        assert outcome.status == ActivityStatus.REJECTED
        assert outcome.decided is True
        assert outcome.resolution == "supermajority"
        stored = await repo.get_activity("a1")
        assert stored.decided_at == NOW
        assert CommentaryEventType.VOTE_DECIDED in event_types(sink)

    @pytest.mark.asyncio
    async def test_majority_with_legit_vote(self, repo, service):
        await seed_dispute(repo)

        await service.cast_vote("a1", "u1", "legit")
        await service.cast_vote("a1", "u2", "sus")
        outcome = await service.cast_vote("a1", "u3", "sus")

        assert outcome.status == ActivityStatus.REJECTED
        assert outcome.resolution == "majority"
        assert (outcome.tally.legit, outcome.tally.sus) == (1, 2)

    @pytest.mark.asyncio
    async def test_recasting_same_choice_is_idempotent(self, repo, service):
        await seed_dispute(repo)

        first = await service.cast_vote("a1", "u2", "sus")
        second = await service.cast_vote("a1", "u2", "sus")

        assert second.tally == first.tally
        assert len(await repo.list_votes("a1")) == 1

    @pytest.mark.asyncio
    async def test_changing_vote_replaces_it(self, repo, service):
        await seed_dispute(repo)

        await service.cast_vote("a1", "u2", "sus")
        outcome = await service.cast_vote("a1", "u2", "legit")

        assert (outcome.tally.legit, outcome.tally.sus) == (1, 0)

    @pytest.mark.asyncio
    async def test_choice_is_case_insensitive(self, repo, service):
        await seed_dispute(repo)

        outcome = await service.cast_vote("a1", "u2", " SUS ")

        assert outcome.tally.sus == 1


class TestVotePermissions:
    """Tests for who may vote."""

    @pytest.mark.asyncio
    async def test_invalid_choice(self, repo, service):
        await seed_dispute(repo)
        with pytest.raises(InvalidVoteChoiceError):
            await service.cast_vote("a1", "u2", "maybe")

    @pytest.mark.asyncio
    async def test_unknown_activity(self, repo, service):
        await seed_dispute(repo)
        with pytest.raises(ActivityNotFoundError):
            await service.cast_vote("nope", "u2", "sus")

    @pytest.mark.asyncio
    async def test_non_member(self, repo, service):
        await seed_dispute(repo)
        with pytest.raises(NotSeasonMemberError):
            await service.cast_vote("a1", "stranger", "sus")

    @pytest.mark.asyncio
    async def test_self_vote(self, repo, service):
        await seed_dispute(repo)
        with pytest.raises(SelfVoteError):
            await service.cast_vote("a1", "u5", "legit")

    @pytest.mark.asyncio
    async def test_small_season_voting_disabled(self, repo, service):
        """Exactly 2 members -> every vote is refused."""
        await seed_dispute(repo, players=2, author="p2")

        with pytest.raises(VotingDisabledError) as exc_info:
            await service.cast_vote("a1", "u1", "sus")

        assert exc_info.value.code.value == "VOTING_DISABLED"
        assert (await repo.get_activity("a1")).status == ActivityStatus.APPROVED


class TestRemove:
    """Tests for cancelling disputes and withdrawing votes."""

    @pytest.mark.asyncio
    async def test_initiator_cancels(self, repo, service, sink):
        await seed_dispute(repo)
        await service.cast_vote("a1", "u2", "sus")
        await service.cast_vote("a1", "u3", "sus")

        outcome = await service.cast_vote("a1", "u2", "remove")

        assert outcome.status == ActivityStatus.APPROVED
        assert outcome.decided is False
        assert outcome.resolution == "cancelled"
        assert await repo.list_votes("a1") == []
        stored = await repo.get_activity("a1")
        assert stored.vote_deadline is None
        assert stored.dispute_initiator_id is None
        assert event_types(sink)[-1] == CommentaryEventType.VOTE_CANCELLED

    @pytest.mark.asyncio
    async def test_owner_cancels(self, repo, service):
        await seed_dispute(repo)
        await service.cast_vote("a1", "u2", "sus")

        outcome = await service.cast_vote("a1", "u1", "remove")

        assert outcome.status == ActivityStatus.APPROVED
        assert outcome.resolution == "cancelled"

    @pytest.mark.asyncio
    async def test_other_member_only_withdraws_own_vote(self, repo, service):
        await seed_dispute(repo)
        await service.cast_vote("a1", "u2", "sus")
        await service.cast_vote("a1", "u3", "sus")

        outcome = await service.cast_vote("a1", "u3", "remove")

        assert outcome.status == ActivityStatus.PENDING
        assert outcome.tally.sus == 1
        assert [v.voter_player_id for v in await repo.list_votes("a1")] == ["p2"]

    @pytest.mark.asyncio
    async def test_remove_without_dispute_is_noop(self, repo, service):
        await seed_dispute(repo)

        outcome = await service.cast_vote("a1", "u2", "remove")

        assert outcome.status == ActivityStatus.APPROVED
        assert (await repo.get_activity("a1")).version == 0


class TestClosedDisputes:
    """Tests for terminal immutability and expiry."""

    @pytest.mark.asyncio
    async def test_decided_activity_rejects_votes(self, repo, service):
        await seed_dispute(repo)
        await service.cast_vote("a1", "u1", "sus")
        await service.cast_vote("a1", "u2", "sus")
        await service.cast_vote("a1", "u3", "sus")

        with pytest.raises(VotingClosedError) as exc_info:
            await service.cast_vote("a1", "u4", "legit")
        assert exc_info.value.details["reason"] == "decided"

        with pytest.raises(VotingClosedError):
            await service.cast_vote("a1", "u1", "remove")

        assert (await repo.get_activity("a1")).status == ActivityStatus.REJECTED

    @pytest.mark.asyncio
    async def test_late_vote_settles_then_refuses(self, repo, service, clock):
        await seed_dispute(repo)
        await service.cast_vote("a1", "u1", "legit")
        clock.advance(hours=25)

        with pytest.raises(VotingClosedError) as exc_info:
            await service.cast_vote("a1", "u2", "sus")

        assert exc_info.value.details["reason"] == "expired"
        stored = await repo.get_activity("a1")
        assert stored.status == ActivityStatus.APPROVED
        assert stored.decision_reason == "timeout"
        assert stored.decided_at == clock.now
        assert len(await repo.list_votes("a1")) == 1


class TestResolvePending:
    """Tests for settling disputes on read."""

    @pytest.mark.asyncio
    async def test_timeout_approves(self, repo, service, clock, sink):
        """Pending with 1 legit vote past the deadline -> approved."""
        await seed_dispute(repo)
        await service.cast_vote("a1", "u1", "legit")
        clock.advance(hours=24)

        outcomes = await service.resolve_pending("s1")

        assert len(outcomes) == 1
        assert outcomes[0].status == ActivityStatus.APPROVED
        assert outcomes[0].resolution == "timeout"
        assert outcomes[0].decided is True
        assert event_types(sink)[-1] == CommentaryEventType.VOTE_DECIDED

    @pytest.mark.asyncio
    async def test_open_dispute_untouched(self, repo, service):
        await seed_dispute(repo)
        await service.cast_vote("a1", "u1", "legit")

        assert await service.resolve_pending("s1") == []
        assert (await repo.get_activity("a1")).status == ActivityStatus.PENDING

    @pytest.mark.asyncio
    async def test_dispute_without_votes_fizzles(self, repo, service):
        await seed_season(repo, players=4)
        await repo.save_activity(
            make_activity(
                "a1",
                "p4",
                NOW - timedelta(days=1),
                status=ActivityStatus.PENDING,
                vote_deadline=NOW + timedelta(hours=5),
                dispute_initiator_id="p2",
            )
        )

        outcomes = await service.resolve_pending("s1")

        assert outcomes[0].status == ActivityStatus.APPROVED
        assert outcomes[0].decided is False
        stored = await repo.get_activity("a1")
        assert stored.decided_at is None
        assert stored.vote_deadline is None
        assert stored.dispute_initiator_id is None


class TestCommitConflicts:
    """Tests for optimistic retry."""

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, repo, service):
        await seed_dispute(repo)
        repo.commit_dispute = AsyncMock(return_value=False)

        with pytest.raises(VoteConflictError):
            await service.cast_vote("a1", "u2", "sus")

        assert repo.commit_dispute.await_count == service.settings.vote_commit_max_attempts

    @pytest.mark.asyncio
    async def test_retries_after_lost_race(self, repo, service):
        await seed_dispute(repo)
        repo.commit_dispute = AsyncMock(side_effect=[False, True])

        outcome = await service.cast_vote("a1", "u2", "sus")

        assert outcome.status == ActivityStatus.PENDING
        assert repo.commit_dispute.await_count == 2


class TestOverride:
    """Tests for owner overrides."""

    @pytest.mark.asyncio
    async def test_owner_rejects(self, repo, service, sink):
        await seed_dispute(repo)
        await service.cast_vote("a1", "u2", "sus")

        outcome = await service.override("a1", "u1", "rejected", "Treadmill screenshot reused")

        assert outcome.status == ActivityStatus.REJECTED
        assert outcome.decided is True
        assert outcome.tally.sus == 1
        stored = await repo.get_activity("a1")
        assert stored.decision_reason == "Treadmill screenshot reused"
        assert event_types(sink)[-1] == CommentaryEventType.OWNER_OVERRIDE

    @pytest.mark.asyncio
    async def test_override_is_terminal_for_votes(self, repo, service):
        await seed_dispute(repo)
        await service.override("a1", "u1", "approved")

        with pytest.raises(VotingClosedError):
            await service.cast_vote("a1", "u2", "sus")
        assert (await repo.get_activity("a1")).decision_reason == "owner_override"

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, repo, service):
        await seed_dispute(repo)
        with pytest.raises(ForbiddenError):
            await service.override("a1", "u2", "rejected")

    @pytest.mark.asyncio
    async def test_invalid_status(self, repo, service):
        await seed_dispute(repo)
        with pytest.raises(InvalidOverrideStatusError):
            await service.override("a1", "u1", "pending")

    @pytest.mark.asyncio
    async def test_seasons_without_owner_cannot_override(self, repo, service):
        await seed_season(repo, season=make_season(owner_user_id=None), players=3)
        await repo.save_activity(make_activity("a1", "p3", NOW))
        with pytest.raises(ForbiddenError):
            await service.override("a1", "u1", "rejected")
