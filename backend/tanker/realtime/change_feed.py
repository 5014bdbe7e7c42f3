# backend/tanker/realtime/change_feed.py
"""
Change feeds: where row-level change events come from.

Two strategies sit behind the same interface:

- BroadcastChangeFeed: push. The remote adapter publishes one ChangeEvent per
  committed write to a broadcaster channel per table; listeners receive them
  through broadcaster's shared connection (memory:// in tests, redis:// in
  production).
- PollingChangeFeed: for stores with no native push. Takes a snapshot of the
  table on every tick and emits the difference since the previous tick as
  INSERT/UPDATE/DELETE events.

Consumers never talk to a feed directly; SubscriptionManager does.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from broadcaster import Broadcast
from pydantic_core import to_jsonable_python

from ..core.enums import ChangeType

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
SnapshotFn = Callable[[str], Awaitable[Dict[str, Row]]]


@dataclass(frozen=True)
class ChangeEvent:
    """One row change in one table. Rows are plain JSON-ready dicts."""

    table: str
    type: ChangeType
    new: Optional[Row] = None
    old: Optional[Row] = None

    @property
    def row(self) -> Optional[Row]:
        """The row the event is about (the old row for deletes)."""
        return self.new if self.new is not None else self.old

    def to_json(self) -> str:
        return json.dumps(
            {
                "table": self.table,
                "type": self.type.value,
                "new": to_jsonable_python(self.new),
                "old": to_jsonable_python(self.old),
            }
        )

    @classmethod
    def from_json(cls, payload: str) -> "ChangeEvent":
        data = json.loads(payload)
        return cls(
            table=data["table"],
            type=ChangeType(data["type"]),
            new=data.get("new"),
            old=data.get("old"),
        )


class ChangeFeed(ABC):
    """Source of change events for a table."""

    supports_push: bool = False

    @abstractmethod
    def listen(self, table: str) -> Any:
        """
        Async context manager yielding an async iterator of ChangeEvents.

        Events emitted after the context is entered are guaranteed to be
        delivered; events emitted before may not be.
        """


class BroadcastChangeFeed(ChangeFeed):
    """Push feed on top of a connected broadcaster instance."""

    supports_push = True

    def __init__(self, broadcast: Broadcast, prefix: str = "tanker"):
        self._broadcast = broadcast
        self._prefix = prefix

    def channel_for(self, table: str) -> str:
        return f"{self._prefix}.{table}"

    async def publish(self, event: ChangeEvent) -> None:
        await self._broadcast.publish(channel=self.channel_for(event.table), message=event.to_json())

    @asynccontextmanager
    async def listen(self, table: str) -> AsyncIterator[AsyncIterator[ChangeEvent]]:
        async with self._broadcast.subscribe(channel=self.channel_for(table)) as subscriber:
            yield self._decode(subscriber)

    @staticmethod
    async def _decode(subscriber: Any) -> AsyncIterator[ChangeEvent]:
        async for message in subscriber:
            yield ChangeEvent.from_json(message.message)


def diff_snapshots(table: str, previous: Dict[str, Row], current: Dict[str, Row]) -> List[ChangeEvent]:
    """Change events that turn `previous` into `current`, keyed by record id."""
    events: List[ChangeEvent] = []
    for record_id, row in current.items():
        before = previous.get(record_id)
        if before is None:
            events.append(ChangeEvent(table=table, type=ChangeType.INSERT, new=row))
        elif before != row:
            events.append(ChangeEvent(table=table, type=ChangeType.UPDATE, new=row, old=before))
    for record_id, row in previous.items():
        if record_id not in current:
            events.append(ChangeEvent(table=table, type=ChangeType.DELETE, old=row))
    return events


class PollingChangeFeed(ChangeFeed):
    """
    Poll-based feed for stores without push notifications.

    Latency is bounded by `interval` seconds (LOCAL_POLL_INTERVAL_SECONDS,
    5 seconds by default). A change made and reverted within one interval is
    not observed.
    """

    supports_push = False

    def __init__(self, snapshot: SnapshotFn, interval: float):
        if interval <= 0:
            raise ValueError("poll interval must be positive")
        self._snapshot = snapshot
        self.interval = interval

    @asynccontextmanager
    async def listen(self, table: str) -> AsyncIterator[AsyncIterator[ChangeEvent]]:
        baseline = await self._snapshot(table)
        yield self._poll(table, baseline)

    async def _poll(self, table: str, previous: Dict[str, Row]) -> AsyncIterator[ChangeEvent]:
        while True:
            await asyncio.sleep(self.interval)
            current = await self._snapshot(table)
            for event in diff_snapshots(table, previous, current):
                yield event
            previous = current
