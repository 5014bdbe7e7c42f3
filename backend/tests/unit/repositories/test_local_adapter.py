# backend/tests/unit/repositories/test_local_adapter.py
"""
Tests for the on-device adapter: JSON collections under fixed keys, the
EntityStore contract, the current-user slot and polling live updates.
"""

import asyncio
from datetime import datetime, timedelta, timezone
import json
from typing import List

import pytest
import pytest_asyncio

from tanker.core.enums import BookingStatus, ChangeType, SortOrder
from tanker.core.exceptions import (
    ConflictException,
    NotFoundException,
    TransientStorageException,
    ValidationException,
)
from tanker.models import Booking, CustomerUser, DriverUser
from tanker.repositories.base_repository import QueryOptions, RecordChange, RecordFilter
from tanker.repositories.local import FileKeyValueStore, InMemoryKeyValueStore, LocalPersistenceAdapter
from tests.factories import make_address, make_customer, make_driver, make_vehicle


def make_booking(**overrides) -> Booking:
    created = overrides.pop("created_at", datetime(2024, 3, 1, 10, tzinfo=timezone.utc))
    data = {
        "customer_id": "cust-1",
        "tanker_size": 5000,
        "base_price": 400,
        "distance_charge": 50,
        "total_price": 450,
        "delivery_address": make_address(),
        "created_at": created,
        "updated_at": created,
    }
    data.update(overrides)
    return Booking(**data)


class YieldingKeyValueStore(InMemoryKeyValueStore):
    """Suspends on every read so two writers interleave."""

    async def get_item(self, key):
        value = await super().get_item(key)
        await asyncio.sleep(0)
        return value


@pytest.mark.unit
class TestStorageFormat:
    @pytest.mark.asyncio
    async def test_collections_use_fixed_keys_and_camel_case(self, local_adapter, kv_store):
        booking_id = await local_adapter.bookings.create(make_booking())
        await local_adapter.users.create(make_customer())
        await local_adapter.vehicles.create(make_vehicle())

        assert set(await kv_store.keys()) == {"bookings", "users_collection", "vehicles_collection"}
        rows = json.loads(await kv_store.get_item("bookings"))
        assert rows[0]["id"] == booking_id
        assert rows[0]["customerId"] == "cust-1"
        assert rows[0]["deliveryAddress"]["isDefault"] is False
        assert rows[0]["createdAt"].startswith("2024-03-01T10:00:00")

    @pytest.mark.asyncio
    async def test_reads_records_written_by_the_mobile_client(self, local_adapter, kv_store):
        legacy = [
            {
                "id": "1700000000000",
                "customerId": "u1",
                "customerName": "Asha",
                "customerPhone": "98",
                "status": "pending",
                "tankerSize": 10000,
                "basePrice": 500,
                "distanceCharge": 100,
                "totalPrice": 600,
                "deliveryAddress": {"address": "Lake Rd", "latitude": 1.0, "longitude": 2.0},
                "distance": 3,
                "paymentStatus": "pending",
                "canCancel": True,
                "createdAt": "2024-01-01T08:00:00.000Z",
                "updatedAt": "2024-01-01T08:00:00.000Z",
            }
        ]
        await kv_store.set_item("bookings", json.dumps(legacy))

        booking = await local_adapter.bookings.get("1700000000000")

        assert booking.total_price == 600
        assert booking.created_at == datetime(2024, 1, 1, 8, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_naive_dates_are_read_as_utc(self, local_adapter):
        await local_adapter.bookings.create(make_booking(id="b1", created_at=datetime(2024, 1, 1)))
        booking = await local_adapter.bookings.get("b1")
        assert booking.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_corrupted_collection_is_a_storage_error(self, local_adapter, kv_store):
        await kv_store.set_item("bookings", "{not json")
        with pytest.raises(TransientStorageException):
            await local_adapter.bookings.query()

    @pytest.mark.asyncio
    async def test_users_round_trip_by_role(self, local_adapter):
        await local_adapter.users.create(make_customer(id="u1"))
        await local_adapter.users.create(make_driver(id="u2"))

        assert isinstance(await local_adapter.users.get("u1"), CustomerUser)
        assert isinstance(await local_adapter.users.get("u2"), DriverUser)


@pytest.mark.unit
class TestEntityStore:
    @pytest.mark.asyncio
    async def test_create_generates_id(self, local_adapter):
        booking_id = await local_adapter.bookings.create(make_booking())
        assert booking_id
        assert (await local_adapter.bookings.get(booking_id)).id == booking_id

    @pytest.mark.asyncio
    async def test_duplicate_id_conflicts(self, local_adapter):
        await local_adapter.bookings.create(make_booking(id="b1"))
        with pytest.raises(ConflictException):
            await local_adapter.bookings.create(make_booking(id="b1"))

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, local_adapter):
        assert await local_adapter.bookings.get("nope") is None

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, local_adapter):
        await local_adapter.bookings.create(make_booking(id="b1"))

        await local_adapter.bookings.update("b1", {"status": BookingStatus.ACCEPTED, "driver_id": "d1"})

        booking = await local_adapter.bookings.get("b1")
        assert booking.status == BookingStatus.ACCEPTED
        assert booking.driver_id == "d1"
        assert booking.total_price == 450

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(self, local_adapter):
        with pytest.raises(NotFoundException):
            await local_adapter.bookings.update("nope", {"status": "accepted"})

    @pytest.mark.asyncio
    async def test_update_unknown_field_is_rejected(self, local_adapter):
        await local_adapter.bookings.create(make_booking(id="b1"))
        with pytest.raises(ValidationException):
            await local_adapter.bookings.update("b1", {"colour": "blue"})

    @pytest.mark.asyncio
    async def test_update_with_invalid_value_is_rejected(self, local_adapter):
        await local_adapter.bookings.create(make_booking(id="b1"))
        with pytest.raises(ValidationException):
            await local_adapter.bookings.update("b1", {"total_price": -10})

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, local_adapter):
        await local_adapter.bookings.create(make_booking(id="b1"))

        await local_adapter.bookings.delete("b1")
        await local_adapter.bookings.delete("b1")

        assert await local_adapter.bookings.get("b1") is None


@pytest.mark.unit
class TestQuery:
    @pytest_asyncio.fixture
    async def seeded(self, local_adapter) -> LocalPersistenceAdapter:
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        for index, customer in enumerate(["c1", "c1", "c2", "c1"]):
            await local_adapter.bookings.create(
                make_booking(id=f"b{index}", customer_id=customer, created_at=base + timedelta(hours=index))
            )
        return local_adapter

    @pytest.mark.asyncio
    async def test_default_is_newest_first(self, seeded):
        assert [b.id for b in await seeded.bookings.query()] == ["b3", "b2", "b1", "b0"]

    @pytest.mark.asyncio
    async def test_filter_sort_and_page(self, seeded):
        page = await seeded.bookings.query(
            RecordFilter(equals={"customer_id": "c1"}),
            QueryOptions(limit=2, offset=1, sort_order=SortOrder.ASC),
        )
        assert [b.id for b in page] == ["b1", "b3"]

    @pytest.mark.asyncio
    async def test_callable_predicate(self, seeded):
        result = await seeded.bookings.query(lambda b: b.id.endswith("2"))
        assert [b.id for b in result] == ["b2"]

    @pytest.mark.asyncio
    async def test_missing_sort_values_go_last(self, seeded):
        await seeded.bookings.update("b0", {"delivered_at": datetime(2024, 4, 1, tzinfo=timezone.utc)})
        result = await seeded.bookings.query(options=QueryOptions(sort_by="delivered_at"))
        assert result[0].id == "b0"

    @pytest.mark.asyncio
    async def test_unsupported_sort_field(self, seeded):
        with pytest.raises(ValidationException):
            await seeded.bookings.query(options=QueryOptions(sort_by="customer_name"))

    def test_negative_paging_is_rejected(self):
        with pytest.raises(ValidationException):
            QueryOptions(limit=-1)
        with pytest.raises(ValidationException):
            QueryOptions(offset=-1)

    def test_record_filter_clauses(self):
        booking = make_booking(id="b1", delivered_at=datetime(2024, 3, 15, tzinfo=timezone.utc))

        assert RecordFilter(equals={"status": BookingStatus.PENDING}).matches(booking)
        assert RecordFilter(one_of={"status": ["pending", "accepted"]}).matches(booking)
        assert RecordFilter(is_null={"driver_id": True}).matches(booking)
        assert not RecordFilter(is_null={"driver_id": False}).matches(booking)
        assert RecordFilter(
            date_field="delivered_at",
            date_from=datetime(2024, 3, 1, tzinfo=timezone.utc),
            date_to=datetime(2024, 4, 1, tzinfo=timezone.utc),
        ).matches(booking)
        assert not RecordFilter(
            date_field="delivered_at", date_to=datetime(2024, 3, 15, tzinfo=timezone.utc)
        ).matches(booking)


@pytest.mark.unit
class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_save_get_remove(self, local_adapter, kv_store):
        assert await local_adapter.users.get_current_user() is None

        await local_adapter.users.save_current_user(make_customer(id="u1"))
        assert json.loads(await kv_store.get_item("current_user"))["id"] == "u1"
        assert (await local_adapter.users.get_current_user()).id == "u1"

        await local_adapter.users.remove_current_user()
        assert await local_adapter.users.get_current_user() is None


@pytest.mark.unit
class TestReadModifyWriteRace:
    @pytest.mark.asyncio
    async def test_interleaved_writers_lose_an_update(self):
        """Known limitation: whole-collection writes are last-writer-wins."""
        adapter = LocalPersistenceAdapter(YieldingKeyValueStore(), poll_interval=0.05)
        await adapter.bookings.create(make_booking(id="b1"))

        await asyncio.gather(
            adapter.bookings.update("b1", {"driver_name": "Ravi"}),
            adapter.bookings.update("b1", {"cancellation_reason": "late"}),
        )

        booking = await adapter.bookings.get("b1")
        applied = [booking.driver_name == "Ravi", booking.cancellation_reason == "late"]
        assert applied.count(True) == 1


@pytest.mark.unit
class TestFileKeyValueStore:
    @pytest.mark.asyncio
    async def test_set_get_remove(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path / "device"))

        await store.set_item("bookings", "[]")
        assert await store.get_item("bookings") == "[]"
        assert await store.keys() == ["bookings"]

        await store.remove_item("bookings")
        await store.remove_item("bookings")
        assert await store.get_item("bookings") is None

    @pytest.mark.asyncio
    async def test_adapter_persists_across_instances(self, tmp_path):
        directory = str(tmp_path / "device")
        first = LocalPersistenceAdapter(FileKeyValueStore(directory), poll_interval=0.05)
        await first.bookings.create(make_booking(id="b1"))

        second = LocalPersistenceAdapter(FileKeyValueStore(directory), poll_interval=0.05)
        assert (await second.bookings.get("b1")).id == "b1"


@pytest.mark.unit
class TestLocalSubscriptions:
    @pytest.mark.asyncio
    async def test_polling_delivers_matching_changes(self, local_adapter):
        assert local_adapter.supports_push is False
        changes: List[RecordChange] = []
        received = asyncio.Event()

        def on_change(change: RecordChange) -> None:
            changes.append(change)
            received.set()

        unsubscribe = await local_adapter.bookings.subscribe({"customer_id": "c1"}, on_change)
        await local_adapter.bookings.create(make_booking(id="other", customer_id="c2"))
        await local_adapter.bookings.create(make_booking(id="mine", customer_id="c1"))
        await asyncio.wait_for(received.wait(), timeout=2)
        unsubscribe()

        assert [c.record_id for c in changes] == ["mine"]
        assert changes[0].type == ChangeType.INSERT
        assert changes[0].record.customer_id == "c1"

    @pytest.mark.asyncio
    async def test_delete_delivers_no_record(self, local_adapter):
        await local_adapter.bookings.create(make_booking(id="b1"))
        changes: List[RecordChange] = []
        received = asyncio.Event()

        def on_change(change: RecordChange) -> None:
            changes.append(change)
            received.set()

        unsubscribe = await local_adapter.bookings.subscribe({"id": "b1"}, on_change)
        await local_adapter.bookings.delete("b1")
        await asyncio.wait_for(received.wait(), timeout=2)
        unsubscribe()

        assert changes[0].type == ChangeType.DELETE
        assert changes[0].record is None

    @pytest.mark.asyncio
    async def test_same_filter_shares_a_channel(self, local_adapter):
        first = await local_adapter.bookings.subscribe({"id": "b1"}, lambda change: None)
        second = await local_adapter.bookings.subscribe({"id": "b1"}, lambda change: None)

        assert local_adapter.subscriptions.ref_count("bookings:id=b1") == 2
        first()
        second()
        assert local_adapter.subscriptions.active_channels() == []

    @pytest.mark.asyncio
    async def test_multi_field_filter_is_rejected(self, local_adapter):
        with pytest.raises(ValidationException):
            await local_adapter.bookings.subscribe({"id": "b1", "status": "pending"}, lambda c: None)
