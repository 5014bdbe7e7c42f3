# backend/tanker/services/booking_lifecycle.py
"""
Booking lifecycle service.

Owns every booking status and payment-status rule:

    pending -> accepted -> in_transit -> delivered
    pending -> cancelled

delivered and cancelled are terminal. Skipping a state (pending -> delivered)
or going back is rejected. can_cancel is true only while a booking is
pending; the first transition out of pending clears it for good.

Storage errors from the adapter propagate unchanged; nothing here retries.
"""

import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..core.enums import BookingStatus, PaymentStatus
from ..core.exceptions import (
    InvalidStatusTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import month_bounds, utc_now
from ..models import Booking
from ..repositories.base_repository import (
    PersistenceAdapter,
    QueryOptions,
    RecordChange,
    RecordFilter,
)
from ..realtime.subscription_manager import Unsubscribe
from ..schemas.booking import BookingCreate
from .base import BaseService

logger = logging.getLogger(__name__)

BookingCallback = Callable[[Optional[Booking]], Union[None, Awaitable[None]]]

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.ACCEPTED, BookingStatus.CANCELLED}),
    BookingStatus.ACCEPTED: frozenset({BookingStatus.IN_TRANSIT}),
    BookingStatus.IN_TRANSIT: frozenset({BookingStatus.DELIVERED}),
    BookingStatus.DELIVERED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

# Only driver/agency assignment may ride along with a transition
ASSIGNMENT_FIELDS = frozenset({"driver_id", "driver_name", "driver_phone", "agency_id", "agency_name"})


def can_transition(current: BookingStatus, requested: BookingStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


class BookingLifecycle(BaseService):
    """
    Service for creating bookings and moving them through their lifecycle.

    Constructed with an explicit adapter and injected into callers.
    """

    def __init__(self, adapter: PersistenceAdapter):
        super().__init__(adapter)

    @BaseService.measure_operation("create_booking")
    async def create_booking(self, data: Union[BookingCreate, Mapping[str, Any]]) -> str:
        """
        Create a pending booking.

        Args:
            data: Booking details; total_price is computed when omitted

        Returns:
            The new booking id

        Raises:
            ValidationException: If customer_id is missing, a price is
                negative, or a given total does not match base + distance
        """
        if not isinstance(data, BookingCreate):
            try:
                data = BookingCreate.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationException(
                    "Invalid booking data",
                    details={"errors": e.errors(include_url=False, include_context=False)},
                ) from e

        if not data.customer_id:
            raise ValidationException("customerId is required", details={"field": "customer_id"})

        prices = {
            "base_price": data.base_price,
            "distance_charge": data.distance_charge,
            "total_price": data.total_price,
        }
        negative = sorted(name for name, value in prices.items() if value is not None and value < 0)
        if negative:
            raise ValidationException(
                "Prices must not be negative", details={"fields": negative}
            )
        if data.tanker_size <= 0 or data.quantity < 1:
            raise ValidationException(
                "Tanker size and quantity must be positive",
                details={"tanker_size": data.tanker_size, "quantity": data.quantity},
            )

        total = data.base_price + data.distance_charge
        if data.total_price is not None and abs(data.total_price - total) > 1e-6:
            raise ValidationException(
                "totalPrice must equal basePrice + distanceCharge",
                details={"total_price": data.total_price, "expected": total},
            )

        now = utc_now()
        booking = Booking(
            **data.model_dump(exclude={"total_price"}),
            id=self.adapter.generate_id(),
            total_price=total,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            can_cancel=True,
            created_at=now,
            updated_at=now,
        )
        booking_id = await self.adapter.bookings.create(booking)
        self.logger.info(f"Created booking {booking_id} for customer {data.customer_id}")
        return booking_id

    @BaseService.measure_operation("update_status")
    async def update_status(
        self,
        booking_id: str,
        new_status: Union[BookingStatus, str],
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Move a booking to its next status.

        Sets accepted_at on accepted and delivered_at on delivered, clears
        can_cancel on every transition out of pending, and merges `extra`
        (driver or agency assignment only) into the same write.

        Raises:
            NotFoundException: If the booking does not exist
            InvalidStatusTransitionException: If the move is not allowed
            ValidationException: If `extra` holds anything but driver or agency fields
        """
        try:
            new_status = BookingStatus(new_status)
        except ValueError as e:
            raise ValidationException(
                f"Unknown booking status '{new_status}'", details={"status": str(new_status)}
            ) from e

        extra = dict(extra or {})
        rejected = sorted(set(extra) - ASSIGNMENT_FIELDS)
        if rejected:
            raise ValidationException(
                "Only driver and agency assignment can be set with a status change",
                details={"fields": rejected, "allowed": sorted(ASSIGNMENT_FIELDS)},
            )

        booking = await self.adapter.bookings.get(booking_id)
        if booking is None:
            raise NotFoundException("Booking", booking_id)

        if not can_transition(booking.status, new_status):
            raise InvalidStatusTransitionException(booking.status.value, new_status.value)

        now = utc_now()
        updates: Dict[str, Any] = {"status": new_status, "updated_at": now, "can_cancel": False}
        if new_status == BookingStatus.ACCEPTED and booking.accepted_at is None:
            updates["accepted_at"] = now
        elif new_status == BookingStatus.DELIVERED and booking.delivered_at is None:
            updates["delivered_at"] = now
        updates.update(extra)

        await self.adapter.bookings.update(booking_id, updates)
        self.logger.info(f"Booking {booking_id}: {booking.status.value} -> {new_status.value}")

        if new_status == BookingStatus.DELIVERED:
            driver_id = extra.get("driver_id") or booking.driver_id
            if driver_id:
                await self._refresh_driver_earnings(driver_id, booking_id)

    async def _refresh_driver_earnings(self, driver_id: str, booking_id: str) -> None:
        """Recompute the driver's delivered total and count for the current month."""
        try:
            start, end = month_bounds(utc_now())
            delivered = await self.get_bookings_for_earnings(driver_id, start=start, end=end)
            await self.adapter.users.update(
                driver_id,
                {
                    "total_earnings": sum(b.total_price for b in delivered),
                    "completed_orders": len(delivered),
                },
            )
        except Exception as e:
            # Earnings are derived data; the delivery itself is already stored
            self.logger.error(
                f"Failed to refresh monthly earnings for driver {driver_id} "
                f"after booking {booking_id}: {str(e)}"
            )

    @BaseService.measure_operation("cancel_booking")
    async def cancel_booking(self, booking_id: str, reason: str) -> None:
        """
        Cancel a booking.

        Does not consult can_cancel: that policy belongs to the caller, and
        admin override flows cancel bookings that are no longer cancellable
        by the customer.

        Raises:
            NotFoundException: If the booking does not exist
        """
        await self.adapter.bookings.update(
            booking_id,
            {
                "status": BookingStatus.CANCELLED,
                "cancellation_reason": reason,
                "can_cancel": False,
                "updated_at": utc_now(),
            },
        )
        self.logger.info(f"Cancelled booking {booking_id}: {reason}")

    # Queries

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        return await self.adapter.bookings.get(booking_id)

    async def get_all_bookings(self, options: Optional[QueryOptions] = None) -> List[Booking]:
        return await self.adapter.bookings.query(None, options)

    async def get_bookings_by_customer(
        self, customer_id: str, options: Optional[QueryOptions] = None
    ) -> List[Booking]:
        return await self.adapter.bookings.query(RecordFilter(equals={"customer_id": customer_id}), options)

    async def get_bookings_by_driver(
        self,
        driver_id: str,
        options: Optional[QueryOptions] = None,
        statuses: Optional[Sequence[BookingStatus]] = None,
    ) -> List[Booking]:
        record_filter = RecordFilter(equals={"driver_id": driver_id})
        if statuses:
            record_filter.one_of["status"] = list(statuses)
        return await self.adapter.bookings.query(record_filter, options)

    async def get_available_bookings(self, options: Optional[QueryOptions] = None) -> List[Booking]:
        """Pending bookings no driver has taken yet."""
        return await self.adapter.bookings.query(
            RecordFilter(equals={"status": BookingStatus.PENDING}, is_null={"driver_id": True}),
            options,
        )

    async def get_bookings_for_earnings(
        self,
        driver_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        statuses: Optional[Sequence[BookingStatus]] = None,
    ) -> List[Booking]:
        """
        A driver's bookings for earnings reports.

        Args:
            driver_id: Driver id
            start: Inclusive lower bound on delivered_at
            end: Exclusive upper bound on delivered_at
            statuses: Statuses to include, delivered only by default
        """
        record_filter = RecordFilter(
            equals={"driver_id": driver_id},
            one_of={"status": list(statuses or [BookingStatus.DELIVERED])},
        )
        if start is not None or end is not None:
            record_filter.date_field = "delivered_at"
            record_filter.date_from = start
            record_filter.date_to = end
        return await self.adapter.bookings.query(record_filter, QueryOptions(sort_by="delivered_at"))

    # Live updates

    async def subscribe(self, booking_id: str, callback: BookingCallback) -> Unsubscribe:
        """
        Call `callback` with the latest booking whenever it changes (None once deleted).

        Returns:
            An unsubscribe function; calling it again is a no-op
        """
        disposed = False

        async def on_change(change: RecordChange) -> None:
            if disposed:
                return
            result = callback(change.record)
            if inspect.isawaitable(result):
                await result

        release = await self.adapter.bookings.subscribe({"id": booking_id}, on_change)

        def unsubscribe() -> None:
            nonlocal disposed
            if disposed:
                return
            disposed = True
            release()

        return unsubscribe
