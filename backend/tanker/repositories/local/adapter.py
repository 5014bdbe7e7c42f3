# backend/tanker/repositories/local/adapter.py
"""
On-device persistence adapter.

Each collection is one JSON array stored under a fixed key, with camelCase
field names and ISO-8601 date strings, exactly as the mobile client writes
it. Every write reads the whole array, changes it in memory and writes the
whole array back. Two writers interleaving on the same collection can lose
an update (read-modify-write race); nothing here locks against that.

There is no push notification on-device, so subscriptions run on a polling
change feed (LOCAL_POLL_INTERVAL_SECONDS).
"""

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ...core.config import settings
from ...core.enums import ChangeType
from ...core.exceptions import (
    ConflictException,
    NotFoundException,
    TransientStorageException,
    ValidationException,
)
from ...models import BankAccount, Booking, User, Vehicle, user_adapter
from ...models.user import USER_FIELD_NAMES
from ...realtime.change_feed import ChangeEvent, PollingChangeFeed
from ...realtime.subscription_manager import ChannelDescriptor, SubscriptionManager, Unsubscribe
from ..base_repository import (
    ChangeCallback,
    EntityStore,
    FilterKey,
    PersistenceAdapter,
    QueryOptions,
    RecordChange,
    RecordFilter,
    T,
    sort_and_page,
)
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
LocalPredicate = Callable[[Any], bool]


class LocalCollection(EntityStore[T]):
    """One entity type stored as a JSON array under a single key."""

    def __init__(
        self,
        kv: KeyValueStore,
        key: str,
        table: str,
        parser: TypeAdapter,
        field_names: frozenset,
        id_factory: Callable[[], str],
        subscriptions: SubscriptionManager,
        entity_name: str,
        sortable_fields: Tuple[str, ...] = ("created_at", "updated_at"),
    ):
        self.kv = kv
        self.key = key
        self.table = table
        self._parser = parser
        self._field_names = field_names
        self._id_factory = id_factory
        self._subscriptions = subscriptions
        self.entity_name = entity_name
        self.sortable_fields = sortable_fields

    async def load_rows(self) -> List[Row]:
        raw = await self.kv.get_item(self.key)
        if raw is None:
            return []
        try:
            rows = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TransientStorageException(
                f"Collection '{self.key}' is not valid JSON", operation="load", details={"key": self.key}
            ) from e
        if not isinstance(rows, list):
            raise TransientStorageException(
                f"Collection '{self.key}' is not a JSON array", operation="load", details={"key": self.key}
            )
        return rows

    async def save_rows(self, rows: List[Row]) -> None:
        await self.kv.set_item(self.key, json.dumps(rows))

    def parse(self, row: Mapping[str, Any]) -> T:
        try:
            return self._parser.validate_python(row)
        except PydanticValidationError as e:
            raise ValidationException(
                f"Invalid {self.entity_name} data",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    async def load_records(self) -> List[T]:
        return [self.parse(row) for row in await self.load_rows()]

    @staticmethod
    def _index_of(rows: List[Row], id: str) -> Optional[int]:
        for index, row in enumerate(rows):
            if row.get("id") == id:
                return index
        return None

    async def create(self, record: T) -> str:
        if not record.id:
            record = record.model_copy(update={"id": self._id_factory()})
        rows = await self.load_rows()
        if self._index_of(rows, record.id) is not None:
            raise ConflictException(
                f"{self.entity_name} '{record.id}' already exists", details={"id": record.id}
            )
        rows.append(record.to_storage())
        await self.save_rows(rows)
        return record.id

    async def get(self, id: str) -> Optional[T]:
        rows = await self.load_rows()
        index = self._index_of(rows, id)
        return None if index is None else self.parse(rows[index])

    async def update(self, id: str, partial: Mapping[str, Any]) -> None:
        unknown = set(partial) - self._field_names
        if unknown:
            raise ValidationException(
                f"Unknown {self.entity_name} field(s): {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )
        rows = await self.load_rows()
        index = self._index_of(rows, id)
        if index is None:
            raise NotFoundException(self.entity_name, id)
        current = self.parse(rows[index])
        merged = self.parse({**current.model_dump(), **dict(partial), "id": id})
        rows[index] = merged.to_storage()
        await self.save_rows(rows)

    async def delete(self, id: str) -> None:
        rows = await self.load_rows()
        remaining = [row for row in rows if row.get("id") != id]
        if len(remaining) != len(rows):
            await self.save_rows(remaining)

    async def query(
        self,
        record_filter: Optional[Union[RecordFilter, LocalPredicate]] = None,
        options: Optional[QueryOptions] = None,
    ) -> List[T]:
        options = self.resolve_options(options)
        records = await self.load_records()
        if isinstance(record_filter, RecordFilter):
            records = [r for r in records if record_filter.matches(r)]
        elif callable(record_filter):
            records = [r for r in records if record_filter(r)]
        return sort_and_page(records, options)

    async def snapshot(self) -> Dict[str, Row]:
        return {row["id"]: row for row in await self.load_rows() if "id" in row}

    async def subscribe(self, filter_key: FilterKey, callback: ChangeCallback) -> Unsubscribe:
        key = self.single_filter_key(filter_key)
        if key is None:
            channel_name, channel_filter = f"{self.table}:*", None
        else:
            name, value = key
            if name not in self._field_names:
                raise ValidationException(f"Unknown {self.entity_name} field: {name}")
            channel_name = f"{self.table}:{name}={value}"
            channel_filter = f"{to_camel(name)}=eq.{value}"

        async def handler(event: ChangeEvent) -> None:
            row = event.row or {}
            record = None if event.type == ChangeType.DELETE else self.parse(event.new)
            result = callback(RecordChange(type=event.type, record_id=row.get("id", ""), record=record))
            if result is not None:
                await result

        descriptor = ChannelDescriptor(
            channel_name=channel_name,
            table=self.table,
            filter=channel_filter,
            on_error=lambda e: logger.warning("Live updates for %s failed: %s", channel_name, str(e)),
        )
        return await self._subscriptions.subscribe(descriptor, handler)


class LocalUserCollection(LocalCollection[User]):
    """Users collection plus the signed-in user slot."""

    CURRENT_USER_KEY = "current_user"

    async def get_current_user(self) -> Optional[User]:
        raw = await self.kv.get_item(self.CURRENT_USER_KEY)
        if raw is None:
            return None
        try:
            return self.parse(json.loads(raw))
        except json.JSONDecodeError as e:
            raise TransientStorageException(
                "Stored current user is not valid JSON", operation="get_current_user"
            ) from e

    async def save_current_user(self, user: User) -> None:
        await self.kv.set_item(self.CURRENT_USER_KEY, json.dumps(user.to_storage()))

    async def remove_current_user(self) -> None:
        await self.kv.remove_item(self.CURRENT_USER_KEY)


class LocalPersistenceAdapter(PersistenceAdapter):
    """PersistenceAdapter over an on-device key-value store."""

    name = "local"
    supports_push = False

    COLLECTION_KEYS = {
        "users": "users_collection",
        "bookings": "bookings",
        "vehicles": "vehicles_collection",
        "bank_accounts": "bank_accounts_collection",
    }

    def __init__(self, kv: KeyValueStore, poll_interval: Optional[float] = None):
        self.kv = kv
        self.poll_interval = poll_interval or settings.local_poll_interval_seconds
        self.subscriptions = SubscriptionManager(PollingChangeFeed(self._snapshot, self.poll_interval))

        common = dict(kv=kv, id_factory=self.generate_id, subscriptions=self.subscriptions)
        self.users = LocalUserCollection(
            key=self.COLLECTION_KEYS["users"],
            table="users",
            parser=user_adapter,
            field_names=USER_FIELD_NAMES,
            entity_name="User",
            sortable_fields=("created_at",),
            **common,
        )
        self.bookings = LocalCollection[Booking](
            key=self.COLLECTION_KEYS["bookings"],
            table="bookings",
            parser=TypeAdapter(Booking),
            field_names=Booking.field_names(),
            entity_name="Booking",
            sortable_fields=("created_at", "updated_at", "delivered_at"),
            **common,
        )
        self.vehicles = LocalCollection[Vehicle](
            key=self.COLLECTION_KEYS["vehicles"],
            table="vehicles",
            parser=TypeAdapter(Vehicle),
            field_names=Vehicle.field_names(),
            entity_name="Vehicle",
            **common,
        )
        self.bank_accounts = LocalCollection[BankAccount](
            key=self.COLLECTION_KEYS["bank_accounts"],
            table="bank_accounts",
            parser=TypeAdapter(BankAccount),
            field_names=BankAccount.field_names(),
            entity_name="BankAccount",
            **common,
        )
        self._by_table: Dict[str, LocalCollection] = {
            "users": self.users,
            "bookings": self.bookings,
            "vehicles": self.vehicles,
            "bank_accounts": self.bank_accounts,
        }

    async def _snapshot(self, table: str) -> Dict[str, Row]:
        return await self._by_table[table].snapshot()

    async def initialize(self) -> None:
        logger.info(
            "Local adapter ready (poll interval %.1fs, %d stored keys)",
            self.poll_interval,
            len(await self.kv.keys()),
        )
