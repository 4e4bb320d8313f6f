"""
Activity dispute voting.

A disputed workout goes ``approved -> pending`` when a member votes on it,
and leaves ``pending`` either by resolution (majority, supermajority,
unanimity, timeout) or when the initiator or season owner cancels. Only the
season owner can change a decided activity, through ``override``.

Every write goes through ``SeasonRepository.commit_dispute`` with the
version that was read; on a lost race the whole read-decide-write cycle is
repeated.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence

from ..db.repositories.base import DisputeUpdate
from ..exceptions import (
    ActivityNotFoundError,
    ForbiddenError,
    InvalidOverrideStatusError,
    InvalidVoteChoiceError,
    SelfVoteError,
    VoteConflictError,
    VotingClosedError,
    VotingDisabledError,
)
from ..models.activity import (
    Activity,
    ActivityStatus,
    DisputeOutcome,
    Vote,
    VoteChoice,
    VoteTally,
)
from ..models.season import Player, Season
from .base import BaseService
from .commentary import CommentaryEvent, CommentaryEventType


# ============================================================================
# Resolution rule
# ============================================================================

@dataclass
class Resolution:
    """A status change decided by ``resolve_dispute``."""

    status: ActivityStatus
    reason: str
    terminal: bool


def tally_votes(votes: Sequence[Vote], eligible: int) -> VoteTally:
    legit = sum(1 for v in votes if v.choice == VoteChoice.LEGIT)
    sus = sum(1 for v in votes if v.choice == VoteChoice.SUS)
    return VoteTally(legit=legit, sus=sus, eligible=eligible)


def resolve_dispute(
    status: ActivityStatus,
    tally: VoteTally,
    vote_deadline: Optional[datetime],
    now: datetime,
    supermajority: float = 0.75,
) -> Optional[Resolution]:
    """
    Decide whether a dispute settles, checking rules in a fixed order.

    Returns None when nothing changes (no eligible voters, not pending, or
    still open). A pending dispute with no votes fizzles back to approved
    without being decided.
    """
    eligible = tally.eligible
    if eligible == 0:
        return None
    if status != ActivityStatus.PENDING:
        return None
    if tally.total == 0:
        return Resolution(ActivityStatus.APPROVED, "fizzled", terminal=False)
    if vote_deadline is not None and now >= vote_deadline:
        return Resolution(ActivityStatus.APPROVED, "timeout", terminal=True)
    if eligible >= 2 and tally.sus / eligible >= supermajority:
        return Resolution(ActivityStatus.REJECTED, "supermajority", terminal=True)
    if tally.sus == eligible:
        return Resolution(ActivityStatus.REJECTED, "unanimous", terminal=True)
    if tally.total > eligible / 2:
        if tally.legit >= tally.sus:
            return Resolution(ActivityStatus.APPROVED, "majority", terminal=True)
        return Resolution(ActivityStatus.REJECTED, "majority", terminal=True)
    return None


def parse_vote_choice(value: Any) -> VoteChoice:
    try:
        return VoteChoice(str(value).strip().lower())
    except ValueError:
        raise InvalidVoteChoiceError(value) from None


def parse_override_status(value: Any) -> ActivityStatus:
    status = str(value or "").strip().lower()
    if status not in (ActivityStatus.APPROVED.value, ActivityStatus.REJECTED.value):
        raise InvalidOverrideStatusError(value)
    return ActivityStatus(status)


@dataclass
class _Plan:
    update: Optional[DisputeUpdate]
    votes_after: List[Vote]
    events: List[CommentaryEventType]
    resolution: Optional[str] = None
    closed_reason: Optional[str] = None


# ============================================================================
# Service
# ============================================================================

class VoteService(BaseService):
    """Casts votes, settles disputes and applies owner overrides."""

    @property
    def max_attempts(self) -> int:
        return max(1, self.settings.vote_commit_max_attempts)

    def _eligible(self, players: Sequence[Player], activity: Activity) -> int:
        return sum(1 for p in players if p.id != activity.player_id)

    def _settle(
        self,
        activity: Activity,
        update: DisputeUpdate,
        votes_after: List[Vote],
        eligible: int,
        now: datetime,
    ) -> Optional[str]:
        """Apply the resolution rule to a planned update in place."""
        resolution = resolve_dispute(
            update.status,
            tally_votes(votes_after, eligible),
            update.vote_deadline,
            now,
            self.settings.reject_supermajority,
        )
        if resolution is None:
            return None
        update.status = resolution.status
        update.decision_reason = resolution.reason
        if resolution.terminal:
            update.decided_at = now
        else:
            update.vote_deadline = None
            update.dispute_initiator_id = None
            update.decided_at = None
        return resolution.reason

    def _current_state(self, activity: Activity) -> DisputeUpdate:
        return DisputeUpdate(
            status=activity.status,
            vote_deadline=activity.vote_deadline,
            decided_at=activity.decided_at,
            dispute_initiator_id=activity.dispute_initiator_id,
            decision_reason=activity.decision_reason,
        )

    def _plan_vote(
        self,
        activity: Activity,
        season: Season,
        voter: Player,
        choice: VoteChoice,
        votes: List[Vote],
        eligible: int,
        now: datetime,
    ) -> _Plan:
        decided = activity.is_decided or activity.status == ActivityStatus.REJECTED
        update = self._current_state(activity)
        events: List[CommentaryEventType] = []

        if choice == VoteChoice.REMOVE:
            if decided:
                raise VotingClosedError(activity.id, "decided")
            if activity.status != ActivityStatus.PENDING:
                return _Plan(update=None, votes_after=votes, events=[])
            is_initiator = voter.id == activity.dispute_initiator_id
            is_owner = bool(season.owner_user_id) and voter.user_id == season.owner_user_id
            if is_initiator or is_owner:
                update.status = ActivityStatus.APPROVED
                update.vote_deadline = None
                update.dispute_initiator_id = None
                update.decision_reason = "cancelled"
                update.clear_votes = True
                return _Plan(update, [], [CommentaryEventType.VOTE_CANCELLED], resolution="cancelled")
            votes_after = [v for v in votes if v.voter_player_id != voter.id]
            update.delete_vote_of = voter.id
        else:
            if decided:
                raise VotingClosedError(activity.id, "decided")
            vote = Vote(activity_id=activity.id, voter_player_id=voter.id, choice=choice, created_at=now)
            if activity.status == ActivityStatus.APPROVED:
                update.status = ActivityStatus.PENDING
                update.vote_deadline = now + timedelta(hours=self.settings.vote_window_hours)
                update.dispute_initiator_id = voter.id
                update.decision_reason = None
                update.clear_votes = True
                votes_after = [vote]
                events.append(CommentaryEventType.VOTE_STARTED)
            else:
                if activity.vote_deadline is not None and now >= activity.vote_deadline:
                    # Settle the expired dispute, then refuse the late vote
                    reason = self._settle(activity, update, votes, eligible, now)
                    return _Plan(
                        update if reason else None,
                        votes,
                        [CommentaryEventType.VOTE_DECIDED] if update.decided_at else [],
                        resolution=reason,
                        closed_reason="expired",
                    )
                votes_after = [v for v in votes if v.voter_player_id != voter.id] + [vote]
            update.upsert_vote = vote

        reason = self._settle(activity, update, votes_after, eligible, now)
        if reason and update.decided_at is not None:
            events.append(CommentaryEventType.VOTE_DECIDED)
        return _Plan(update, votes_after, events, resolution=reason)

    async def cast_vote(self, activity_id: str, voter_user_id: str, choice: Any) -> DisputeOutcome:
        """
        Cast, change or withdraw a vote on a disputed activity.

        Args:
            activity_id: Activity being voted on
            voter_user_id: Caller's user id
            choice: ``legit``, ``sus`` or ``remove``

        Returns:
            The activity's dispute state after the vote

        Raises:
            InvalidVoteChoiceError, ActivityNotFoundError, SeasonNotFoundError,
            NotSeasonMemberError, SelfVoteError, VotingDisabledError,
            VotingClosedError, VoteConflictError
        """
        parsed = parse_vote_choice(choice)

        for attempt in range(1, self.max_attempts + 1):
            activity = await self.repository.get_activity(activity_id)
            if activity is None:
                raise ActivityNotFoundError(activity_id)
            season = await self._load_season(activity.season_id)
            players = await self.repository.list_players(season.id)
            voter = self._find_member(players, voter_user_id, season.id)
            if voter.id == activity.player_id:
                raise SelfVoteError(activity_id)
            min_members = self.settings.voting_min_members
            if len(players) < min_members:
                raise VotingDisabledError(len(players), min_members)

            now = self.now()
            votes = await self.repository.list_votes(activity_id)
            eligible = self._eligible(players, activity)
            plan = self._plan_vote(activity, season, voter, parsed, votes, eligible, now)

            if plan.update is None:
                if plan.closed_reason:
                    raise VotingClosedError(activity_id, plan.closed_reason)
                return self._outcome(activity, self._current_state(activity), votes, eligible)

            if await self.repository.commit_dispute(activity.id, activity.version, plan.update):
                self.logger.info(
                    f"Vote {parsed.value} by player {voter.id} on activity {activity_id}: "
                    f"{activity.status.value} -> {plan.update.status.value}"
                    + (f" ({plan.resolution})" if plan.resolution else "")
                )
                await self._emit_all(season, activity, voter, plan, eligible)
                if plan.closed_reason:
                    raise VotingClosedError(activity_id, plan.closed_reason)
                return self._outcome(activity, plan.update, plan.votes_after, eligible, plan.resolution)

            self.logger.info(f"Dispute write conflict on activity {activity_id} (attempt {attempt})")

        raise VoteConflictError(activity_id, self.max_attempts)

    async def resolve_pending(self, season_id: str) -> List[DisputeOutcome]:
        """
        Settle every pending dispute of a season that the rule resolves now.

        Used on reads so timeouts and fizzled disputes settle without a new
        vote. Returns the disputes whose status changed.
        """
        season = await self._load_season(season_id)
        players = await self.repository.list_players(season_id)
        pending = await self.repository.list_season_activities(
            season_id,
            statuses=[ActivityStatus.PENDING],
            limit=self.settings.manual_activity_limit,
        )

        outcomes: List[DisputeOutcome] = []
        for activity in pending:
            outcome = await self._resolve_one(season, players, activity)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def _resolve_one(
        self,
        season: Season,
        players: List[Player],
        activity: Activity,
    ) -> Optional[DisputeOutcome]:
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                activity = await self.repository.get_activity(activity.id)
                if activity is None or activity.status != ActivityStatus.PENDING:
                    return None
            if activity.is_decided:
                return None
            now = self.now()
            votes = await self.repository.list_votes(activity.id)
            eligible = self._eligible(players, activity)
            update = self._current_state(activity)
            reason = self._settle(activity, update, votes, eligible, now)
            if reason is None:
                return None
            if update.decided_at is None:
                update.clear_votes = True
            if await self.repository.commit_dispute(activity.id, activity.version, update):
                self.logger.info(f"Dispute on activity {activity.id} settled: {update.status.value} ({reason})")
                if update.decided_at is not None:
                    plan = _Plan(update, votes, [CommentaryEventType.VOTE_DECIDED], resolution=reason)
                    await self._emit_all(season, activity, None, plan, eligible)
                return self._outcome(activity, update, [] if update.clear_votes else votes, eligible, reason)
        self.logger.warning(f"Gave up settling activity {activity.id} after {self.max_attempts} conflicts")
        return None

    async def override(
        self,
        activity_id: str,
        owner_user_id: str,
        new_status: Any,
        reason: Optional[str] = None,
    ) -> DisputeOutcome:
        """
        Force an activity to approved or rejected (season owner only).

        The override is recorded as a new decision and is terminal for
        voting.
        """
        status = parse_override_status(new_status)
        reason = reason.strip() if isinstance(reason, str) and reason.strip() else None

        for attempt in range(1, self.max_attempts + 1):
            activity = await self.repository.get_activity(activity_id)
            if activity is None:
                raise ActivityNotFoundError(activity_id)
            season = await self._load_season(activity.season_id)
            if not season.owner_user_id or season.owner_user_id != owner_user_id:
                raise ForbiddenError("Only the season owner can override a decision", {"activity_id": activity_id})

            now = self.now()
            update = self._current_state(activity)
            update.status = status
            update.decided_at = now
            update.decision_reason = reason or "owner_override"

            if await self.repository.commit_dispute(activity.id, activity.version, update):
                self.logger.info(f"Owner override on activity {activity_id}: {status.value}")
                await self._emit(
                    CommentaryEvent(
                        type=CommentaryEventType.OWNER_OVERRIDE,
                        season_id=season.id,
                        payload={
                            "activity_id": activity_id,
                            "activity_player_id": activity.player_id,
                            "status": status.value,
                            "reason": reason,
                        },
                        occurred_at=now,
                    )
                )
                votes = await self.repository.list_votes(activity_id)
                players = await self.repository.list_players(season.id)
                return self._outcome(activity, update, votes, self._eligible(players, activity), "owner_override")

        raise VoteConflictError(activity_id, self.max_attempts)

    def _outcome(
        self,
        activity: Activity,
        state: DisputeUpdate,
        votes: Sequence[Vote],
        eligible: int,
        resolution: Optional[str] = None,
    ) -> DisputeOutcome:
        return DisputeOutcome(
            activity_id=activity.id,
            status=state.status,
            decided=state.decided_at is not None,
            vote_deadline=state.vote_deadline,
            tally=tally_votes(votes, eligible),
            resolution=resolution or state.decision_reason,
        )

    async def _emit_all(
        self,
        season: Season,
        activity: Activity,
        voter: Optional[Player],
        plan: _Plan,
        eligible: int,
    ) -> None:
        tally = tally_votes(plan.votes_after, eligible)
        for event_type in plan.events:
            payload = {
                "activity_id": activity.id,
                "activity_player_id": activity.player_id,
                "legit": tally.legit,
                "sus": tally.sus,
                "eligible": tally.eligible,
            }
            if voter is not None:
                payload["actor_player_id"] = voter.id
            if event_type == CommentaryEventType.VOTE_DECIDED and plan.update is not None:
                payload["status"] = plan.update.status.value
                payload["reason"] = plan.resolution
            if event_type == CommentaryEventType.VOTE_STARTED and plan.update is not None:
                payload["vote_deadline"] = plan.update.vote_deadline.isoformat() if plan.update.vote_deadline else None
            await self._emit(CommentaryEvent(type=event_type, season_id=season.id, payload=payload, occurred_at=self.now()))
