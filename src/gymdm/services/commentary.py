"""
Commentary and audit events.

State transitions publish a ``CommentaryEvent`` to every registered sink.
Delivery is best-effort: a slow or failing sink is logged and skipped and
never affects the transition that produced the event.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)

SINK_TIMEOUT_SECONDS = 2.0


class CommentaryEventType(str, Enum):
    VOTE_STARTED = "VOTE_STARTED"
    VOTE_DECIDED = "VOTE_DECIDED"
    VOTE_CANCELLED = "VOTE_CANCELLED"
    OWNER_OVERRIDE = "OWNER_OVERRIDE"
    HEARTS_ADJUSTED = "HEARTS_ADJUSTED"
    SEASON_STARTED = "SEASON_STARTED"
    SEASON_KO = "SEASON_KO"
    SEASON_WINNER = "SEASON_WINNER"
    SEASON_COMPLETED = "SEASON_COMPLETED"


@dataclass
class CommentaryEvent:
    """Something worth narrating or auditing."""

    type: CommentaryEventType
    season_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "season_id": self.season_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


@runtime_checkable
class CommentarySink(Protocol):
    async def publish(self, event: CommentaryEvent) -> None:
        ...


class LoggingCommentarySink:
    """Writes every event to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def publish(self, event: CommentaryEvent) -> None:
        logger.log(self.level, "[%s] season=%s %s", event.type.value, event.season_id, event.payload)


class HistoryEventSink:
    """Persists events to the season history log."""

    def __init__(self, repository: Any):
        self._repository = repository

    async def publish(self, event: CommentaryEvent) -> None:
        payload = dict(event.payload)
        payload.setdefault("occurred_at", event.occurred_at.isoformat())
        await self._repository.add_history_event(event.season_id, event.type.value, payload)


class CommentaryDispatcher:
    """Fans one event out to all sinks without letting them fail the caller."""

    def __init__(
        self,
        sinks: Optional[Sequence[CommentarySink]] = None,
        timeout_seconds: float = SINK_TIMEOUT_SECONDS,
    ):
        self._sinks: List[CommentarySink] = list(sinks or [])
        self._timeout = timeout_seconds

    @property
    def sinks(self) -> List[CommentarySink]:
        return list(self._sinks)

    def add_sink(self, sink: CommentarySink) -> None:
        self._sinks.append(sink)

    async def _deliver(self, sink: CommentarySink, event: CommentaryEvent) -> None:
        try:
            async with asyncio.timeout(self._timeout):
                await sink.publish(event)
        except Exception as e:
            logger.warning(
                f"Commentary sink {type(sink).__name__} failed for {event.type.value} "
                f"(season {event.season_id}): {e!r}"
            )

    async def dispatch(self, event: CommentaryEvent) -> None:
        if not self._sinks:
            return
        await asyncio.gather(*(self._deliver(sink, event) for sink in self._sinks))
