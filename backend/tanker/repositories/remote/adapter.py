# backend/tanker/repositories/remote/adapter.py
"""
Remote persistence adapter (relational store + push change feed).

Callers see the same records as with the on-device adapter. Two translations
happen at this boundary:

- Column names and value types, through the functions in transformers.py.
- User identity. Foreign keys are stored as users.id; callers use the
  external id (users.auth_id when linked, else users.id). Every write
  resolves external -> internal with an ordered strategy, every read maps
  internal -> external.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from broadcaster import Broadcast
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete as sa_delete
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ...core.config import CredentialTier, settings
from ...core.enums import ChangeType, SortOrder, UserRole
from ...core.exceptions import ConflictException, NotFoundException, ValidationException
from ...core.resolution import Resolved
from ...core.timezone_utils import utc_now
from ...models import Address, BankAccount, Booking, User, Vehicle, user_adapter
from ...models.user import USER_FIELD_NAMES
from ...realtime.change_feed import BroadcastChangeFeed, ChangeEvent
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
from . import transformers as tx
from .database import create_store_engine
from .gateway import RemoteGateway, external_ids, user_id_resolver
from .tables import (
    AddressRow,
    AdminRow,
    BankAccountRow,
    BookingRow,
    CustomerRow,
    DriverRow,
    UserRoleRow,
    UserRow,
    VehicleRow,
)

logger = logging.getLogger(__name__)

PROFILE_TABLES: Dict[str, Type[Any]] = {
    "customer": CustomerRow,
    "driver": DriverRow,
    "admin": AdminRow,
}


def _invalid(entity_name: str, error: PydanticValidationError) -> ValidationException:
    return ValidationException(
        f"Invalid {entity_name} data",
        details={"errors": error.errors(include_url=False, include_context=False)},
    )


def _resolve_reference(session: Session, field: str, value: Optional[str]) -> Optional[str]:
    """External user id -> users.id for a write. None stays None."""
    if value is None:
        return None
    resolution = user_id_resolver(session).resolve(value)
    if isinstance(resolution, Resolved):
        return resolution.id
    raise ValidationException(
        f"Unknown user '{value}' referenced by {field}",
        code="UNRESOLVED_REFERENCE",
        details={"field": field, "value": value, "tried": list(resolution.tried)},
    )


class RemoteRecordStore(EntityStore[T]):
    """Store for an entity with its own table and user foreign keys."""

    def __init__(
        self,
        gateway: RemoteGateway,
        subscriptions: SubscriptionManager,
        id_factory: Callable[[], str],
        *,
        table: str,
        row_cls: Type[Any],
        model: Type[BaseModel],
        reference_fields: Tuple[str, ...],
        to_values: Callable[[Any, Mapping[str, Optional[str]]], Dict[str, Any]],
        from_row: Callable[[Any, Mapping[str, Optional[str]]], Any],
        entity_name: str,
        sortable_fields: Tuple[str, ...] = ("created_at", "updated_at"),
    ):
        self.gateway = gateway
        self._subscriptions = subscriptions
        self._id_factory = id_factory
        self.table = table
        self.row_cls = row_cls
        self.model = model
        self.reference_fields = reference_fields
        self._to_values = to_values
        self._from_row = from_row
        self.entity_name = entity_name
        self.sortable_fields = sortable_fields

    # Sync helpers, run inside the gateway's worker thread

    def _internal_refs(self, session: Session, record: Any) -> Dict[str, Optional[str]]:
        return {
            field: _resolve_reference(session, field, getattr(record, field))
            for field in self.reference_fields
        }

    def _records_from_rows(self, session: Session, rows: Sequence[Any]) -> List[T]:
        wanted = [getattr(row, field) for row in rows for field in self.reference_fields]
        mapping = external_ids(session, wanted)
        records = []
        for row in rows:
            refs = {}
            for field in self.reference_fields:
                internal = getattr(row, field)
                refs[field] = mapping.get(internal, internal) if internal else None
            records.append(self._from_row(row, refs))
        return records

    def _column(self, name: str) -> Any:
        if name not in self.model.model_fields or not hasattr(self.row_cls, name):
            raise ValidationException(
                f"Cannot filter {self.entity_name} by '{name}'", details={"field": name}
            )
        return getattr(self.row_cls, name)

    def _filter_value(self, session: Session, name: str, value: Any) -> Tuple[bool, Any]:
        """(resolvable, stored value) for a filter operand."""
        value = tx.to_column_value(value)
        if name in self.reference_fields and value is not None:
            resolution = user_id_resolver(session).resolve(value)
            if not isinstance(resolution, Resolved):
                return False, None
            return True, resolution.id
        return True, value

    # EntityStore

    async def create(self, record: T) -> str:
        record_id = record.id or self._id_factory()

        def work(session: Session, events: List[ChangeEvent]) -> str:
            refs = self._internal_refs(session, record)
            row = self.row_cls(id=record_id, **self._to_values(record, refs))
            session.add(row)
            session.flush()
            events.append(ChangeEvent(self.table, ChangeType.INSERT, new=tx.row_to_dict(row)))
            return record_id

        return await self.gateway.run(f"create_{self.table}", work)

    async def get(self, id: str) -> Optional[T]:
        def work(session: Session, events: List[ChangeEvent]) -> Optional[T]:
            row = session.get(self.row_cls, id)
            if row is None:
                return None
            return self._records_from_rows(session, [row])[0]

        return await self.gateway.run(f"get_{self.table}", work)

    async def update(self, id: str, partial: Mapping[str, Any]) -> None:
        unknown = set(partial) - set(self.model.model_fields)
        if unknown:
            raise ValidationException(
                f"Unknown {self.entity_name} field(s): {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )

        def work(session: Session, events: List[ChangeEvent]) -> None:
            row = session.get(self.row_cls, id)
            if row is None:
                raise NotFoundException(self.entity_name, id)
            before = tx.row_to_dict(row)
            current = self._records_from_rows(session, [row])[0]
            try:
                merged = self.model.model_validate({**current.model_dump(), **dict(partial), "id": id})
            except PydanticValidationError as e:
                raise _invalid(self.entity_name, e) from e
            refs = self._internal_refs(session, merged)
            for column, value in self._to_values(merged, refs).items():
                setattr(row, column, value)
            session.flush()
            events.append(
                ChangeEvent(self.table, ChangeType.UPDATE, new=tx.row_to_dict(row), old=before)
            )

        await self.gateway.run(f"update_{self.table}", work)

    async def delete(self, id: str) -> None:
        def work(session: Session, events: List[ChangeEvent]) -> None:
            row = session.get(self.row_cls, id)
            if row is None:
                return
            before = tx.row_to_dict(row)
            session.delete(row)
            session.flush()
            events.append(ChangeEvent(self.table, ChangeType.DELETE, old=before))

        await self.gateway.run(f"delete_{self.table}", work)

    async def query(
        self,
        record_filter: Optional[RecordFilter] = None,
        options: Optional[QueryOptions] = None,
    ) -> List[T]:
        if record_filter is not None and not isinstance(record_filter, RecordFilter):
            raise ValidationException("The remote store only accepts declarative record filters")
        options = self.resolve_options(options)
        record_filter = record_filter or RecordFilter()

        def work(session: Session, events: List[ChangeEvent]) -> List[T]:
            stmt = select(self.row_cls)
            for name, expected in record_filter.equals.items():
                ok, value = self._filter_value(session, name, expected)
                if not ok:
                    return []
                column = self._column(name)
                stmt = stmt.where(column.is_(None) if value is None else column == value)
            for name, allowed in record_filter.one_of.items():
                values = []
                for candidate in allowed:
                    ok, value = self._filter_value(session, name, candidate)
                    if ok:
                        values.append(value)
                if not values:
                    return []
                stmt = stmt.where(self._column(name).in_(values))
            for name, must_be_null in record_filter.is_null.items():
                column = self._column(name)
                stmt = stmt.where(column.is_(None) if must_be_null else column.is_not(None))
            if record_filter.date_field:
                column = self._column(record_filter.date_field)
                stmt = stmt.where(column.is_not(None))
                if record_filter.date_from is not None:
                    stmt = stmt.where(column >= record_filter.date_from)
                if record_filter.date_to is not None:
                    stmt = stmt.where(column < record_filter.date_to)

            sort_column = self._column(options.sort_by)
            ordering = sort_column.asc() if options.sort_order == SortOrder.ASC else sort_column.desc()
            stmt = stmt.order_by(ordering.nulls_last(), self.row_cls.id)
            if options.offset:
                stmt = stmt.offset(options.offset)
            if options.limit is not None:
                stmt = stmt.limit(options.limit)
            rows = list(session.scalars(stmt))
            return self._records_from_rows(session, rows)

        return await self.gateway.run(f"query_{self.table}", work)

    async def subscribe(self, filter_key: FilterKey, callback: ChangeCallback) -> Unsubscribe:
        key = self.single_filter_key(filter_key)
        if key is None:
            channel_name, channel_filter = f"{self.table}:*", None
        else:
            name, value = key

            def work(session: Session, events: List[ChangeEvent]) -> Tuple[bool, Any]:
                self._column(name)
                return self._filter_value(session, name, value)

            ok, stored = await self.gateway.run(f"subscribe_{self.table}", work)
            if not ok:
                raise ValidationException(
                    f"Unknown user '{value}' referenced by {name}", code="UNRESOLVED_REFERENCE"
                )
            channel_name = f"{self.table}:{name}={value}"
            channel_filter = f"{name}=eq.{stored}"

        async def handler(event: ChangeEvent) -> None:
            record_id = (event.row or {}).get("id", "")
            record = None if event.type == ChangeType.DELETE else await self.get(record_id)
            result = callback(RecordChange(type=event.type, record_id=record_id, record=record))
            if result is not None:
                await result

        descriptor = ChannelDescriptor(
            channel_name=channel_name,
            table=self.table,
            filter=channel_filter,
            on_error=lambda e: logger.warning("Live updates for %s failed: %s", channel_name, str(e)),
        )
        return await self._subscriptions.subscribe(descriptor, handler)


class RemoteUserStore(EntityStore[User]):
    """
    Multi-role users.

    One users row per person, one user_roles row and one profile row per
    role. Reads return one record per role; get() returns the first role.
    The person-level methods below (insert_person, add_role, ...) take
    internal ids and exist for the migration tool.
    """

    table = "users"
    entity_name = "User"
    sortable_fields = ("created_at",)

    def __init__(
        self,
        gateway: RemoteGateway,
        subscriptions: SubscriptionManager,
        id_factory: Callable[[], str],
    ):
        self.gateway = gateway
        self._subscriptions = subscriptions
        self._id_factory = id_factory

    # Sync helpers

    @staticmethod
    def _roles(session: Session, user_id: str) -> List[str]:
        stmt = (
            select(UserRoleRow.role)
            .where(UserRoleRow.user_id == user_id)
            .order_by(UserRoleRow.created_at, UserRoleRow.id)
        )
        return list(session.scalars(stmt))

    @staticmethod
    def _addresses(session: Session, user_id: str) -> List[AddressRow]:
        stmt = select(AddressRow).where(AddressRow.user_id == user_id).order_by(AddressRow.created_at, AddressRow.id)
        return list(session.scalars(stmt))

    def _views(self, session: Session, row: UserRow, role: Optional[str] = None) -> List[User]:
        roles = self._roles(session, row.id)
        if role is not None:
            roles = [r for r in roles if r == role]
        views: List[User] = []
        for each in roles:
            profile = session.get(PROFILE_TABLES[each], row.id)
            addresses = self._addresses(session, row.id) if each == UserRole.CUSTOMER.value else ()
            views.append(tx.user_from_rows(row, each, profile, addresses))
        return views

    @staticmethod
    def _resolve(session: Session, id: str) -> Optional[UserRow]:
        resolution = user_id_resolver(session).resolve(id)
        if isinstance(resolution, Resolved):
            return session.get(UserRow, resolution.id)
        return None

    @staticmethod
    def _add_role_sync(session: Session, user_id: str, role: str) -> bool:
        exists = session.scalar(
            select(UserRoleRow.id).where(UserRoleRow.user_id == user_id, UserRoleRow.role == role)
        )
        if exists:
            return False
        session.add(UserRoleRow(user_id=user_id, role=role))
        session.flush()
        return True

    @staticmethod
    def _write_profile_sync(session: Session, user_id: str, user: User) -> None:
        profile_cls = PROFILE_TABLES[user.role]
        values = tx.profile_values(user)
        profile = session.get(profile_cls, user_id)
        if profile is None:
            session.add(profile_cls(user_id=user_id, **values))
        else:
            for column, value in values.items():
                setattr(profile, column, value)
            profile.updated_at = utc_now()
        session.flush()

    def _add_address_sync(
        self, session: Session, user_id: str, address: Address, skip_existing: bool
    ) -> bool:
        if skip_existing:
            for existing in self._addresses(session, user_id):
                if tx.address_from_row(existing).same_location(address):
                    return False
        session.add(AddressRow(id=self._id_factory(), **tx.address_row_values(address, user_id)))
        session.flush()
        return True

    @staticmethod
    def _changed(events: List[ChangeEvent], row: UserRow, before: Optional[Dict[str, Any]]) -> None:
        change_type = ChangeType.INSERT if before is None else ChangeType.UPDATE
        events.append(ChangeEvent("users", change_type, new=tx.row_to_dict(row), old=before))

    # EntityStore

    async def create(self, record: User) -> str:
        def work(session: Session, events: List[ChangeEvent]) -> str:
            row = self._resolve(session, record.id) if record.id else None
            if row is not None:
                before = tx.row_to_dict(row)
                if record.role in self._roles(session, row.id):
                    raise ConflictException(
                        f"User already holds the {record.role} role",
                        details={"user_id": record.id, "role": record.role},
                    )
            else:
                email = record.email.strip().lower()
                if session.scalar(select(UserRow.id).where(func.lower(UserRow.email) == email)):
                    raise ConflictException(
                        "A user with this email already exists", details={"email": email}
                    )
                before = None
                row = UserRow(id=self._id_factory(), auth_id=record.id or None, **tx.user_row_values(record))
                session.add(row)
                session.flush()

            self._add_role_sync(session, row.id, record.role)
            self._write_profile_sync(session, row.id, record)
            if record.role == UserRole.CUSTOMER.value:
                for address in record.saved_addresses:
                    self._add_address_sync(session, row.id, address, skip_existing=True)
            row.updated_at = utc_now()
            session.flush()
            self._changed(events, row, before)
            return tx.external_user_id(row)

        return await self.gateway.run("create_user", work)

    async def get(self, id: str) -> Optional[User]:
        def work(session: Session, events: List[ChangeEvent]) -> Optional[User]:
            row = self._resolve(session, id)
            if row is None:
                return None
            views = self._views(session, row)
            return views[0] if views else None

        return await self.gateway.run("get_user", work)

    async def get_with_role(self, id: str, role: str) -> Optional[User]:
        """The record for one specific role of a person, if they hold it."""

        def work(session: Session, events: List[ChangeEvent]) -> Optional[User]:
            row = self._resolve(session, id)
            if row is None:
                return None
            views = self._views(session, row, role=role)
            return views[0] if views else None

        return await self.gateway.run("get_user_with_role", work)

    async def update(self, id: str, partial: Mapping[str, Any]) -> None:
        unknown = set(partial) - USER_FIELD_NAMES
        if unknown or "role" in partial:
            fields = sorted(unknown | ({"role"} & set(partial)))
            raise ValidationException(
                f"Cannot update User field(s): {', '.join(fields)}", details={"fields": fields}
            )

        def work(session: Session, events: List[ChangeEvent]) -> None:
            row = self._resolve(session, id)
            if row is None:
                raise NotFoundException("User", id)
            before = tx.row_to_dict(row)
            views = {view.role: view for view in self._views(session, row)}
            if not views:
                raise NotFoundException("User", id)

            touched_roles = [
                role for role, fields in tx.PROFILE_FIELDS.items() if fields & set(partial)
            ]
            for role in touched_roles:
                if role not in views:
                    raise ValidationException(
                        f"User does not hold the {role} role", details={"user_id": id, "role": role}
                    )

            merged: Dict[str, User] = {}
            for role, view in views.items():
                try:
                    merged[role] = user_adapter.validate_python(
                        {**view.model_dump(), **dict(partial), "id": view.id}
                    )
                except PydanticValidationError as e:
                    raise _invalid("User", e) from e

            first = next(iter(merged.values()))
            if tx.USER_BASE_FIELDS & set(partial):
                for column, value in tx.user_row_values(first).items():
                    setattr(row, column, value)
            for role in touched_roles:
                self._write_profile_sync(session, row.id, merged[role])
            if "saved_addresses" in partial:
                session.execute(sa_delete(AddressRow).where(AddressRow.user_id == row.id))
                for address in merged["customer"].saved_addresses:
                    self._add_address_sync(session, row.id, address, skip_existing=False)
            row.updated_at = utc_now()
            session.flush()
            self._changed(events, row, before)

        await self.gateway.run("update_user", work)

    async def delete(self, id: str) -> None:
        def work(session: Session, events: List[ChangeEvent]) -> None:
            row = self._resolve(session, id)
            if row is None:
                return
            before = tx.row_to_dict(row)
            for profile_cls in PROFILE_TABLES.values():
                session.execute(sa_delete(profile_cls).where(profile_cls.user_id == row.id))
            session.execute(sa_delete(AddressRow).where(AddressRow.user_id == row.id))
            session.execute(sa_delete(UserRoleRow).where(UserRoleRow.user_id == row.id))
            session.delete(row)
            session.flush()
            events.append(ChangeEvent("users", ChangeType.DELETE, old=before))

        await self.gateway.run("delete_user", work)

    async def query(
        self,
        record_filter: Optional[RecordFilter] = None,
        options: Optional[QueryOptions] = None,
    ) -> List[User]:
        if record_filter is not None and not isinstance(record_filter, RecordFilter):
            raise ValidationException("The remote store only accepts declarative record filters")
        options = self.resolve_options(options)

        def work(session: Session, events: List[ChangeEvent]) -> List[User]:
            stmt = select(UserRow)
            role = record_filter.equals.get("role") if record_filter else None
            if role is not None:
                role = tx.to_column_value(role)
                stmt = stmt.join(UserRoleRow, UserRoleRow.user_id == UserRow.id).where(
                    UserRoleRow.role == role
                )
            views: List[User] = []
            for row in session.scalars(stmt):
                views.extend(self._views(session, row, role=role))
            return views

        views = await self.gateway.run("query_users", work)
        if record_filter is not None:
            views = [view for view in views if record_filter.matches(view)]
        return sort_and_page(views, options)

    async def subscribe(self, filter_key: FilterKey, callback: ChangeCallback) -> Unsubscribe:
        key = self.single_filter_key(filter_key)
        if key is None:
            channel_name, channel_filter = "users:*", None
        else:
            name, value = key
            if name == "id":

                def work(session: Session, events: List[ChangeEvent]) -> Optional[str]:
                    row = self._resolve(session, value)
                    return row.id if row else None

                internal = await self.gateway.run("subscribe_users", work)
                if internal is None:
                    raise NotFoundException("User", value)
                channel_filter = f"id=eq.{internal}"
            elif name in ("email", "phone", "name"):
                channel_filter = f"{name}=eq.{value}"
            else:
                raise ValidationException(f"Cannot subscribe to users by '{name}'")
            channel_name = f"users:{name}={value}"

        async def handler(event: ChangeEvent) -> None:
            row = event.row or {}
            record_id = row.get("auth_id") or row.get("id", "")
            record = None if event.type == ChangeType.DELETE else await self.get(record_id)
            result = callback(RecordChange(type=event.type, record_id=record_id, record=record))
            if result is not None:
                await result

        descriptor = ChannelDescriptor(
            channel_name=channel_name,
            table="users",
            filter=channel_filter,
            on_error=lambda e: logger.warning("Live updates for %s failed: %s", channel_name, str(e)),
        )
        return await self._subscriptions.subscribe(descriptor, handler)

    # Person-level operations (service credential tier)

    async def insert_person(self, user_id: str, user: User) -> str:
        """
        Insert a users row with a given internal id and no linked identity.

        Raises:
            ConflictException: If the email (or id) is already taken
        """

        def work(session: Session, events: List[ChangeEvent]) -> str:
            row = UserRow(id=user_id, auth_id=None, **tx.user_row_values(user))
            session.add(row)
            session.flush()
            self._changed(events, row, None)
            return row.id

        return await self.gateway.run("insert_person", work)

    async def update_person_by_email(self, email: str, user: User) -> str:
        """
        Overwrite name and phone of the person with this email. The stored
        credential is left alone.

        Returns:
            The existing users.id

        Raises:
            NotFoundException: If no person has this email
        """
        normalized = email.strip().lower()

        def work(session: Session, events: List[ChangeEvent]) -> str:
            row = session.scalar(select(UserRow).where(func.lower(UserRow.email) == normalized))
            if row is None:
                raise NotFoundException("User", normalized)
            before = tx.row_to_dict(row)
            row.name = user.name
            row.phone = user.phone
            row.updated_at = utc_now()
            session.flush()
            self._changed(events, row, before)
            return row.id

        return await self.gateway.run("update_person_by_email", work)

    async def add_role(self, user_id: str, role: str) -> bool:
        """Grant a role. Returns False when the person already holds it."""

        def work(session: Session, events: List[ChangeEvent]) -> bool:
            return self._add_role_sync(session, user_id, role)

        return await self.gateway.run("add_role", work)

    async def write_profile(self, user_id: str, user: User) -> None:
        """Insert or overwrite the profile row for the record's role."""

        def work(session: Session, events: List[ChangeEvent]) -> None:
            self._write_profile_sync(session, user_id, user)

        await self.gateway.run("write_profile", work)

    async def add_address(self, user_id: str, address: Address, skip_existing: bool = True) -> bool:
        """Store an address. With skip_existing an identical one is not duplicated."""

        def work(session: Session, events: List[ChangeEvent]) -> bool:
            return self._add_address_sync(session, user_id, address, skip_existing)

        return await self.gateway.run("add_address", work)

    async def list_addresses(self, user_id: str) -> List[Address]:
        def work(session: Session, events: List[ChangeEvent]) -> List[Address]:
            row = self._resolve(session, user_id)
            if row is None:
                return []
            return [tx.address_from_row(a) for a in self._addresses(session, row.id)]

        return await self.gateway.run("list_addresses", work)


class RemotePersistenceAdapter(PersistenceAdapter):
    """PersistenceAdapter over the remote relational store."""

    name = "remote"
    supports_push = True

    def __init__(self, engine: Engine, broadcast: Broadcast, owns_broadcast: bool = False):
        self.engine = engine
        self.broadcast = broadcast
        self._owns_broadcast = owns_broadcast
        self.feed = BroadcastChangeFeed(broadcast)
        self.gateway = RemoteGateway(engine, self.feed)
        self.subscriptions = SubscriptionManager(self.feed)

        self.users = RemoteUserStore(self.gateway, self.subscriptions, self.generate_id)
        self.bookings = RemoteRecordStore[Booking](
            self.gateway,
            self.subscriptions,
            self.generate_id,
            table="bookings",
            row_cls=BookingRow,
            model=Booking,
            reference_fields=tx.BOOKING_REFERENCE_FIELDS,
            to_values=tx.booking_row_values,
            from_row=tx.booking_from_row,
            entity_name="Booking",
            sortable_fields=("created_at", "updated_at", "delivered_at"),
        )
        self.vehicles = RemoteRecordStore[Vehicle](
            self.gateway,
            self.subscriptions,
            self.generate_id,
            table="vehicles",
            row_cls=VehicleRow,
            model=Vehicle,
            reference_fields=tx.VEHICLE_REFERENCE_FIELDS,
            to_values=tx.vehicle_row_values,
            from_row=tx.vehicle_from_row,
            entity_name="Vehicle",
        )
        self.bank_accounts = RemoteRecordStore[BankAccount](
            self.gateway,
            self.subscriptions,
            self.generate_id,
            table="bank_accounts",
            row_cls=BankAccountRow,
            model=BankAccount,
            reference_fields=tx.BANK_ACCOUNT_REFERENCE_FIELDS,
            to_values=tx.bank_account_row_values,
            from_row=tx.bank_account_from_row,
            entity_name="BankAccount",
        )

    @classmethod
    def from_settings(cls, tier: CredentialTier = "client") -> "RemotePersistenceAdapter":
        engine = create_store_engine(settings.remote_url_for(tier))
        return cls(engine, Broadcast(settings.change_feed_url), owns_broadcast=True)

    async def initialize(self) -> None:
        if self._owns_broadcast:
            await self.broadcast.connect()
        await self.gateway.create_schema()
        logger.info("Remote adapter ready")

    async def close(self) -> None:
        await super().close()
        if self._owns_broadcast:
            await self.broadcast.disconnect()
        self.engine.dispose()

    async def row_counts(self) -> Dict[str, int]:
        return await self.gateway.row_counts()

    async def integrity_issues(self) -> List[str]:
        """Referential and duplicate checks over the whole store."""

        def work(session: Session, events: List[ChangeEvent]) -> List[str]:
            issues: List[str] = []
            user_ids = set(session.scalars(select(UserRow.id)))
            admin_ids = set(
                session.scalars(select(UserRoleRow.user_id).where(UserRoleRow.role == UserRole.ADMIN.value))
            )

            for booking_id, customer_id in session.execute(select(BookingRow.id, BookingRow.customer_id)):
                if customer_id not in user_ids:
                    issues.append(f"Booking {booking_id} has invalid customer_id: {customer_id}")
            for number, agency_id in session.execute(select(VehicleRow.vehicle_number, VehicleRow.agency_id)):
                if agency_id not in admin_ids:
                    issues.append(f"Vehicle {number} has invalid agency_id: {agency_id}")
            for address_id, user_id in session.execute(select(AddressRow.id, AddressRow.user_id)):
                if user_id not in user_ids:
                    issues.append(f"Address {address_id} has invalid user_id: {user_id}")
            for account_id, admin_id in session.execute(select(BankAccountRow.id, BankAccountRow.admin_id)):
                if admin_id not in admin_ids:
                    issues.append(f"Bank account {account_id} has invalid admin_id: {admin_id}")

            duplicates = session.execute(
                select(func.lower(UserRow.email), func.count())
                .group_by(func.lower(UserRow.email))
                .having(func.count() > 1)
            )
            for email, count in duplicates:
                issues.append(f"Duplicate user found: {email} ({count} instances)")
            return issues

        return await self.gateway.run("integrity_issues", work)
