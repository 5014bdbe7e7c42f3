# backend/tests/unit/realtime/test_subscription_manager.py
"""
Tests for SubscriptionManager: channel dedup, reference counting, idempotent
unsubscribe, error routing, and the polling feed.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Tuple

import pytest

from tanker.core.enums import ChangeType
from tanker.realtime.change_feed import ChangeEvent, ChangeFeed, PollingChangeFeed, diff_snapshots
from tanker.realtime.subscription_manager import ChannelDescriptor, SubscriptionManager, parse_filter


class QueueFeed(ChangeFeed):
    """Push feed driven by the test: emit() hands an event to every listener of its table."""

    supports_push = True

    def __init__(self) -> None:
        self.listeners: List[Tuple[str, "asyncio.Queue[Any]"]] = []
        self.opened = 0

    @asynccontextmanager
    async def listen(self, table: str) -> AsyncIterator[AsyncIterator[ChangeEvent]]:
        queue: "asyncio.Queue[Any]" = asyncio.Queue()
        entry = (table, queue)
        self.listeners.append(entry)
        self.opened += 1
        try:
            yield self._drain(queue)
        finally:
            self.listeners.remove(entry)

    @staticmethod
    async def _drain(queue: "asyncio.Queue[Any]") -> AsyncIterator[ChangeEvent]:
        while True:
            item = await queue.get()
            if isinstance(item, Exception):
                raise item
            yield item

    async def emit(self, item: Any, table: str = "bookings") -> None:
        for listener_table, queue in list(self.listeners):
            if listener_table == table:
                await queue.put(item)


class Recorder:
    def __init__(self) -> None:
        self.events: List[ChangeEvent] = []
        self.received = asyncio.Event()

    def __call__(self, event: ChangeEvent) -> None:
        self.events.append(event)
        self.received.set()

    async def wait(self) -> None:
        await asyncio.wait_for(self.received.wait(), timeout=1)
        self.received.clear()


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def booking_event(booking_id: str = "b1", customer_id: str = "c1") -> ChangeEvent:
    return ChangeEvent(
        table="bookings",
        type=ChangeType.UPDATE,
        new={"id": booking_id, "customerId": customer_id, "status": "accepted"},
        old={"id": booking_id, "customerId": customer_id, "status": "pending"},
    )


@pytest.fixture
def feed() -> QueueFeed:
    return QueueFeed()


@pytest.fixture
def manager(feed: QueueFeed) -> SubscriptionManager:
    return SubscriptionManager(feed)


@pytest.mark.unit
class TestParseFilter:
    def test_equality_filter(self):
        assert parse_filter("customerId=eq.c1") == ("customerId", "c1")

    def test_value_may_contain_separators(self):
        assert parse_filter("email=eq.a=b@example.com") == ("email", "a=b@example.com")

    def test_no_filter(self):
        assert parse_filter(None) is None

    @pytest.mark.parametrize("expression", ["customerId", "customerId=gt.5"])
    def test_unsupported_operator(self, expression):
        with pytest.raises(ValueError):
            parse_filter(expression)


@pytest.mark.unit
class TestChannelDescriptor:
    def test_matches_on_table_and_filter(self):
        descriptor = ChannelDescriptor("bookings:c1", "bookings", filter="customerId=eq.c1")

        assert descriptor.matches(booking_event(customer_id="c1"))
        assert not descriptor.matches(booking_event(customer_id="c2"))
        assert not descriptor.matches(
            ChangeEvent(table="users", type=ChangeType.UPDATE, new={"customerId": "c1"})
        )

    def test_delete_matches_on_old_row(self):
        descriptor = ChannelDescriptor("bookings:b1", "bookings", filter="id=eq.b1")
        event = ChangeEvent(table="bookings", type=ChangeType.DELETE, old={"id": "b1"})
        assert descriptor.matches(event)

    def test_event_type_filter(self):
        descriptor = ChannelDescriptor("bookings:inserts", "bookings", event="INSERT")
        assert not descriptor.matches(booking_event())
        assert descriptor.matches(ChangeEvent(table="bookings", type=ChangeType.INSERT, new={"id": "b9"}))


@pytest.mark.unit
class TestReferenceCounting:
    @pytest.mark.asyncio
    async def test_same_channel_name_shares_one_channel(self, manager, feed):
        descriptor = ChannelDescriptor("booking:b1", "bookings", filter="id=eq.b1")
        first, second = Recorder(), Recorder()

        unsub_first = await manager.subscribe(descriptor, first)
        unsub_second = await manager.subscribe(descriptor, second)

        assert feed.opened == 1
        assert manager.ref_count("booking:b1") == 2
        assert manager.channel_state("booking:b1") == "listening"

        await feed.emit(booking_event("b1"))
        await first.wait()
        await second.wait()
        assert len(first.events) == len(second.events) == 1

        unsub_first()
        unsub_second()

    @pytest.mark.asyncio
    async def test_channel_closes_when_last_subscriber_leaves(self, manager, feed):
        descriptor = ChannelDescriptor("booking:b1", "bookings", filter="id=eq.b1")
        unsub_first = await manager.subscribe(descriptor, Recorder())
        unsub_second = await manager.subscribe(descriptor, Recorder())

        unsub_first()
        assert manager.is_subscribed("booking:b1")
        assert manager.ref_count("booking:b1") == 1

        unsub_second()
        await settle()
        assert not manager.is_subscribed("booking:b1")
        assert manager.ref_count("booking:b1") == 0
        assert feed.listeners == []

    @pytest.mark.asyncio
    async def test_unsubscribe_twice_does_not_double_decrement(self, manager):
        descriptor = ChannelDescriptor("booking:b1", "bookings")
        unsub_first = await manager.subscribe(descriptor, Recorder())
        await manager.subscribe(descriptor, Recorder())

        unsub_first()
        unsub_first()

        assert manager.ref_count("booking:b1") == 1
        assert manager.is_subscribed("booking:b1")

    @pytest.mark.asyncio
    async def test_released_handler_stops_receiving(self, manager, feed):
        descriptor = ChannelDescriptor("bookings:*", "bookings")
        leaving, staying = Recorder(), Recorder()
        unsub_leaving = await manager.subscribe(descriptor, leaving)
        await manager.subscribe(descriptor, staying)

        unsub_leaving()
        await feed.emit(booking_event())
        await staying.wait()

        assert leaving.events == []
        assert len(staying.events) == 1

    @pytest.mark.asyncio
    async def test_distinct_names_open_distinct_channels(self, manager, feed):
        await manager.subscribe(ChannelDescriptor("a", "bookings"), Recorder())
        await manager.subscribe(ChannelDescriptor("b", "bookings"), Recorder())

        assert feed.opened == 2
        assert sorted(manager.active_channels()) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_close_all(self, manager, feed):
        unsubscribe = await manager.subscribe(ChannelDescriptor("a", "bookings"), Recorder())
        await manager.subscribe(ChannelDescriptor("b", "users"), Recorder())

        await manager.close_all()

        assert manager.active_channels() == []
        assert feed.listeners == []
        unsubscribe()


@pytest.mark.unit
class TestErrorRouting:
    @pytest.mark.asyncio
    async def test_handler_error_goes_to_on_error(self, manager, feed):
        errors: List[BaseException] = []
        descriptor = ChannelDescriptor("bookings:*", "bookings", on_error=errors.append)

        def broken(event: ChangeEvent) -> None:
            raise RuntimeError("handler bug")

        healthy = Recorder()
        await manager.subscribe(descriptor, broken)
        await manager.subscribe(descriptor, healthy)

        await feed.emit(booking_event())
        await healthy.wait()

        assert [str(e) for e in errors] == ["handler bug"]
        assert manager.channel_state("bookings:*") == "listening"

    @pytest.mark.asyncio
    async def test_feed_failure_marks_channel_errored_but_keeps_it(self, manager, feed):
        errors: List[BaseException] = []
        descriptor = ChannelDescriptor("bookings:*", "bookings", on_error=errors.append)
        unsubscribe = await manager.subscribe(descriptor, Recorder())

        await feed.emit(ConnectionError("backend went away"))
        for _ in range(50):
            if errors:
                break
            await asyncio.sleep(0.01)

        assert isinstance(errors[0], ConnectionError)
        assert manager.channel_state("bookings:*") == "errored"
        assert manager.is_subscribed("bookings:*")

        unsubscribe()
        assert not manager.is_subscribed("bookings:*")

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self, manager, feed):
        done = asyncio.Event()

        async def handler(event: ChangeEvent) -> None:
            await asyncio.sleep(0)
            done.set()

        await manager.subscribe(ChannelDescriptor("bookings:*", "bookings"), handler)
        await feed.emit(booking_event())
        await asyncio.wait_for(done.wait(), timeout=1)


@pytest.mark.unit
class TestPollingFeed:
    def test_diff_snapshots(self):
        previous = {"b1": {"id": "b1", "status": "pending"}, "b2": {"id": "b2"}}
        current = {"b1": {"id": "b1", "status": "accepted"}, "b3": {"id": "b3"}}

        events = {(e.type, e.row["id"]) for e in diff_snapshots("bookings", previous, current)}

        assert events == {
            (ChangeType.UPDATE, "b1"),
            (ChangeType.INSERT, "b3"),
            (ChangeType.DELETE, "b2"),
        }

    def test_interval_must_be_positive(self):
        async def snapshot(table: str) -> Dict[str, Dict[str, Any]]:
            return {}

        with pytest.raises(ValueError):
            PollingChangeFeed(snapshot, interval=0)

    @pytest.mark.asyncio
    async def test_changes_after_listen_are_emitted(self):
        rows: Dict[str, Dict[str, Any]] = {"b1": {"id": "b1", "status": "pending"}}

        async def snapshot(table: str) -> Dict[str, Dict[str, Any]]:
            return {key: dict(value) for key, value in rows.items()}

        feed = PollingChangeFeed(snapshot, interval=0.01)
        assert feed.supports_push is False

        async with feed.listen("bookings") as events:
            rows["b1"]["status"] = "accepted"
            event = await asyncio.wait_for(events.__anext__(), timeout=1)

        assert event.type == ChangeType.UPDATE
        assert event.new["status"] == "accepted"
        assert event.old["status"] == "pending"

    @pytest.mark.asyncio
    async def test_manager_works_over_polling_feed(self):
        rows: Dict[str, Dict[str, Any]] = {}

        async def snapshot(table: str) -> Dict[str, Dict[str, Any]]:
            return dict(rows)

        manager = SubscriptionManager(PollingChangeFeed(snapshot, interval=0.01))
        recorder = Recorder()
        unsubscribe = await manager.subscribe(
            ChannelDescriptor("bookings:c1", "bookings", filter="customerId=eq.c1"), recorder
        )

        rows["b2"] = {"id": "b2", "customerId": "c2"}
        rows["b1"] = {"id": "b1", "customerId": "c1"}
        await recorder.wait()
        unsubscribe()

        assert [e.row["id"] for e in recorder.events] == ["b1"]
        assert recorder.events[0].type == ChangeType.INSERT
