# backend/tanker/realtime/subscription_manager.py
"""
Deduplicated, reference-counted live-update channels.

One channel per channel name, however many consumers ask for it. The first
subscriber opens the channel (a background task reading the change feed);
later subscribers attach their handler to it. The channel is closed when the
last handler is released.

Errors never reach handlers: a handler that raises, or a feed that fails,
is reported to the descriptor's on_error hook. A failed channel stays
registered in the "errored" state until its subscribers unsubscribe.
"""

import asyncio
from dataclasses import dataclass, field
import inspect
import itertools
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from .change_feed import ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)

Handler = Callable[[ChangeEvent], Union[None, Awaitable[None]]]
ErrorHook = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]

WILDCARD_EVENT = "*"


def parse_filter(expression: Optional[str]) -> Optional[Tuple[str, str]]:
    """Parse a "column=eq.value" filter into (column, value)."""
    if not expression:
        return None
    column, sep, rest = expression.partition("=")
    if not sep or not rest.startswith("eq."):
        raise ValueError(f"Unsupported channel filter: {expression!r}")
    return column, rest[len("eq.") :]


@dataclass
class ChannelDescriptor:
    channel_name: str
    table: str
    filter: Optional[str] = None
    event: str = WILDCARD_EVENT
    on_error: Optional[ErrorHook] = None

    def __post_init__(self) -> None:
        self._parsed_filter = parse_filter(self.filter)

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.event != WILDCARD_EVENT and event.type.value != self.event:
            return False
        if self._parsed_filter is None:
            return True
        column, expected = self._parsed_filter
        for row in (event.new, event.old):
            if row is not None and column in row and str(row[column]) == expected:
                return True
        return False


@dataclass
class _Channel:
    descriptor: ChannelDescriptor
    handlers: Dict[int, Handler] = field(default_factory=dict)
    state: str = "connecting"
    ready: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional["asyncio.Task[None]"] = None


class SubscriptionManager:
    """Owns every open channel for one change feed."""

    def __init__(self, feed: ChangeFeed):
        self.feed = feed
        self._channels: Dict[str, _Channel] = {}
        self._tokens = itertools.count(1)

    @property
    def supports_push(self) -> bool:
        return self.feed.supports_push

    async def subscribe(self, descriptor: ChannelDescriptor, handler: Handler) -> Unsubscribe:
        """
        Attach a handler to the channel named by the descriptor.

        Returns once the channel is listening (or has failed and reported the
        failure), so changes made after this call are delivered.

        Returns:
            An unsubscribe function. Calling it more than once is a no-op.
        """
        name = descriptor.channel_name
        channel = self._channels.get(name)
        if channel is None:
            channel = _Channel(descriptor=descriptor)
            self._channels[name] = channel
            channel.task = asyncio.create_task(self._run(channel), name=f"channel:{name}")
            logger.debug("Opened channel %s on table %s", name, descriptor.table)
        else:
            logger.debug("Reusing channel %s (ref_count=%d)", name, len(channel.handlers))

        token = next(self._tokens)
        channel.handlers[token] = handler
        await channel.ready.wait()

        released = False

        def unsubscribe() -> None:
            nonlocal released
            if released:
                return
            released = True
            self._release(name, channel, token)

        return unsubscribe

    def _release(self, name: str, channel: _Channel, token: int) -> None:
        channel.handlers.pop(token, None)
        if channel.handlers:
            return
        if self._channels.get(name) is channel:
            del self._channels[name]
        channel.state = "closed"
        if channel.task is not None and not channel.task.done():
            channel.task.cancel()
        logger.debug("Closed channel %s", name)

    async def _run(self, channel: _Channel) -> None:
        descriptor = channel.descriptor
        try:
            async with self.feed.listen(descriptor.table) as events:
                channel.state = "listening"
                channel.ready.set()
                async for event in events:
                    if descriptor.matches(event):
                        await self._dispatch(channel, event)
            channel.state = "closed"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            channel.state = "errored"
            logger.error("Channel %s failed: %s", descriptor.channel_name, str(e))
            self._report(descriptor, e)
        finally:
            channel.ready.set()

    async def _dispatch(self, channel: _Channel, event: ChangeEvent) -> None:
        for handler in list(channel.handlers.values()):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "Handler on channel %s raised: %s", channel.descriptor.channel_name, str(e)
                )
                self._report(channel.descriptor, e)

    @staticmethod
    def _report(descriptor: ChannelDescriptor, error: BaseException) -> None:
        if descriptor.on_error is None:
            return
        try:
            descriptor.on_error(error)
        except Exception:
            logger.exception("on_error hook for channel %s raised", descriptor.channel_name)

    def is_subscribed(self, channel_name: str) -> bool:
        return channel_name in self._channels

    def ref_count(self, channel_name: str) -> int:
        channel = self._channels.get(channel_name)
        return len(channel.handlers) if channel else 0

    def channel_state(self, channel_name: str) -> Optional[str]:
        channel = self._channels.get(channel_name)
        return channel.state if channel else None

    def active_channels(self) -> List[str]:
        return list(self._channels)

    async def close_all(self) -> None:
        """Close every channel regardless of reference counts (shutdown)."""
        channels = list(self._channels.values())
        self._channels.clear()
        tasks = []
        for channel in channels:
            channel.handlers.clear()
            channel.state = "closed"
            if channel.task is not None and not channel.task.done():
                channel.task.cancel()
                tasks.append(channel.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Closed %d live channel(s)", len(channels))
