# backend/tanker/repositories/base_repository.py
"""
Storage-agnostic persistence contract for the tanker platform.

Every backend implements the same shape for every entity type (Booking, User,
Vehicle, BankAccount):

- create(record) -> id
- get(id) -> record | None
- update(id, partial) -> None, NotFoundException if absent
- delete(id) -> None, no-op if already absent
- query(filter, options) -> records
- subscribe(filter_key, callback) -> unsubscribe

Stores never apply business rules: status transitions, price checks and
cancellation policy live in the service layer. Each mutation is
last-write-wins at the field level; there are no cross-entity transactions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from ..core.enums import ChangeType, SortOrder
from ..core.exceptions import ValidationException
from ..core.timezone_utils import ensure_utc
from ..core.ulid_helper import generate_ulid
from ..realtime.subscription_manager import SubscriptionManager, Unsubscribe

# Type variable for generic record support
T = TypeVar("T")

logger = logging.getLogger(__name__)

# Equality filter on a single field, e.g. {"id": "01H..."} or {"customer_id": "u1"}.
# An empty dict subscribes to the whole collection.
FilterKey = Mapping[str, Any]


@dataclass(frozen=True)
class RecordChange(Generic[T]):
    """A change delivered to store subscribers, already in domain form.

    `record` is the current state of the record; it is None for deletes.
    """

    type: ChangeType
    record_id: str
    record: Optional[T] = None


ChangeCallback = Callable[[RecordChange[Any]], Union[None, Awaitable[None]]]


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass
class RecordFilter:
    """
    Declarative record predicate.

    All clauses are ANDed. Field names are domain attribute names (snake_case).

    Attributes:
        equals: field -> value that must match exactly
        one_of: field -> allowed values
        is_null: field -> True if the field must be unset, False if it must be set
        date_field: field the date bounds apply to
        date_from: inclusive lower bound
        date_to: exclusive upper bound
    """

    equals: Dict[str, Any] = field(default_factory=dict)
    one_of: Dict[str, Sequence[Any]] = field(default_factory=dict)
    is_null: Dict[str, bool] = field(default_factory=dict)
    date_field: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    def fields(self) -> List[str]:
        names = list(self.equals) + list(self.one_of) + list(self.is_null)
        if self.date_field:
            names.append(self.date_field)
        return names

    def matches(self, record: Any) -> bool:
        for name, expected in self.equals.items():
            if _plain(getattr(record, name, None)) != _plain(expected):
                return False
        for name, allowed in self.one_of.items():
            if _plain(getattr(record, name, None)) not in {_plain(v) for v in allowed}:
                return False
        for name, must_be_null in self.is_null.items():
            if (getattr(record, name, None) is None) != must_be_null:
                return False
        if self.date_field:
            value = getattr(record, self.date_field, None)
            if value is None:
                return False
            value = ensure_utc(value)
            if self.date_from is not None and value < ensure_utc(self.date_from):
                return False
            if self.date_to is not None and value >= ensure_utc(self.date_to):
                return False
        return True


@dataclass
class QueryOptions:
    limit: Optional[int] = None
    offset: int = 0
    sort_by: str = "created_at"
    sort_order: SortOrder = SortOrder.DESC

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValidationException("limit must not be negative", details={"limit": self.limit})
        if self.offset < 0:
            raise ValidationException("offset must not be negative", details={"offset": self.offset})
        self.sort_order = SortOrder(self.sort_order)


def sort_and_page(records: List[T], options: QueryOptions) -> List[T]:
    """Sort in memory and apply offset/limit. Records missing the sort key go last."""
    present = [r for r in records if getattr(r, options.sort_by, None) is not None]
    missing = [r for r in records if getattr(r, options.sort_by, None) is None]
    present.sort(
        key=lambda r: ensure_utc(getattr(r, options.sort_by))
        if isinstance(getattr(r, options.sort_by), datetime)
        else getattr(r, options.sort_by),
        reverse=options.sort_order == SortOrder.DESC,
    )
    ordered = present + missing
    end = None if options.limit is None else options.offset + options.limit
    return ordered[options.offset : end]


class EntityStore(ABC, Generic[T]):
    """
    Abstract store for one entity type.

    All methods are coroutines; any of them may suspend on device or network
    I/O. Storage failures surface as TransientStorageException, unique
    constraint violations as ConflictException.
    """

    entity_name: str = "Record"
    sortable_fields: Tuple[str, ...] = ("created_at", "updated_at")

    @abstractmethod
    async def create(self, record: T) -> str:
        """
        Persist a new record.

        Args:
            record: The record; an id is generated when it has none

        Returns:
            The id of the stored record

        Raises:
            ConflictException: If a unique field is already taken
        """

    @abstractmethod
    async def get(self, id: str) -> Optional[T]:
        """
        Retrieve a record by id.

        Returns:
            The record if found, None otherwise
        """

    @abstractmethod
    async def update(self, id: str, partial: Mapping[str, Any]) -> None:
        """
        Merge a partial set of fields into a stored record.

        Args:
            id: Record id
            partial: Field name -> new value

        Raises:
            NotFoundException: If no record has that id
            ValidationException: If a field is unknown or a value invalid
        """

    @abstractmethod
    async def delete(self, id: str) -> None:
        """Delete a record. Deleting an absent record is a no-op."""

    @abstractmethod
    async def query(
        self,
        record_filter: Optional[RecordFilter] = None,
        options: Optional[QueryOptions] = None,
    ) -> List[T]:
        """
        Filtered, sorted, paginated read.

        Defaults to every record, newest first by created_at.
        """

    @abstractmethod
    async def subscribe(self, filter_key: FilterKey, callback: ChangeCallback) -> Unsubscribe:
        """
        Register a live-update listener for records matching filter_key.

        Returns:
            An unsubscribe function, safe to call more than once
        """

    def resolve_options(self, options: Optional[QueryOptions]) -> QueryOptions:
        options = options or QueryOptions()
        if options.sort_by not in self.sortable_fields:
            raise ValidationException(
                f"Cannot sort {self.entity_name} by '{options.sort_by}'",
                details={"allowed": list(self.sortable_fields)},
            )
        return options

    @staticmethod
    def single_filter_key(filter_key: FilterKey) -> Optional[Tuple[str, Any]]:
        if not filter_key:
            return None
        if len(filter_key) != 1:
            raise ValidationException(
                "Subscriptions filter on exactly one field", details={"fields": list(filter_key)}
            )
        name, value = next(iter(filter_key.items()))
        return name, _plain(value)


class PersistenceAdapter(ABC):
    """
    One storage backend: a store per entity type plus lifecycle hooks.

    `supports_push` tells whether the backend emits change notifications
    natively. When it does not, `subscriptions` is built on a polling feed;
    callers cannot tell the difference.
    """

    name: str = "adapter"
    supports_push: bool = False

    users: EntityStore[Any]
    bookings: EntityStore[Any]
    vehicles: EntityStore[Any]
    bank_accounts: EntityStore[Any]
    subscriptions: SubscriptionManager

    def generate_id(self) -> str:
        return generate_ulid()

    async def initialize(self) -> None:
        """Prepare the backend (create schema, connect feeds)."""

    async def close(self) -> None:
        """Release channels and connections."""
        await self.subscriptions.close_all()
