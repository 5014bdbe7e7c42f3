# backend/tanker/routes/v1/bookings.py
"""
Bookings routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingLifecycle.

Endpoints:
    POST /                    → Create a pending booking
    GET /                     → List bookings (by customer, by driver, or available)
    GET /{booking_id}         → Get one booking
    PATCH /{booking_id}/status → Move a booking to its next status
    POST /{booking_id}/cancel → Cancel a booking (customer policy or admin override)
"""

import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status
from pydantic.alias_generators import to_snake

from ...api.dependencies import get_booking_lifecycle
from ...core.enums import SortOrder
from ...core.exceptions import DomainException, NotFoundException, ValidationException
from ...models import Booking
from ...repositories.base_repository import QueryOptions
from ...schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingCreatedResponse,
    BookingListResponse,
    BookingStatusUpdate,
)
from ...services.booking_lifecycle import BookingLifecycle

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: BookingCreate = Body(...),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> BookingCreatedResponse:
    """Create a pending booking. totalPrice is computed when omitted."""
    try:
        booking_id = await lifecycle.create_booking(payload)
        return BookingCreatedResponse(id=booking_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=BookingListResponse, response_model_by_alias=True)
async def list_bookings(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    driver_id: Optional[str] = Query(None, alias="driverId"),
    available: bool = Query(False, description="Only pending bookings without a driver"),
    limit: Optional[int] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> BookingListResponse:
    """
    List bookings.

    At most one of customerId, driverId and available may be given; without
    any of them every booking is returned.
    """
    try:
        selectors = [s for s in (customer_id, driver_id, available or None) if s]
        if len(selectors) > 1:
            raise ValidationException("Use only one of customerId, driverId and available")

        options = QueryOptions(limit=limit, offset=offset, sort_by=to_snake(sort_by), sort_order=sort_order)
        if customer_id:
            items = await lifecycle.get_bookings_by_customer(customer_id, options)
        elif driver_id:
            items = await lifecycle.get_bookings_by_driver(driver_id, options)
        elif available:
            items = await lifecycle.get_available_bookings(options)
        else:
            items = await lifecycle.get_all_bookings(options)
        return BookingListResponse(items=items, total=len(items))
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{booking_id}", response_model=Booking, response_model_by_alias=True)
async def get_booking(
    booking_id: str = Path(..., min_length=1),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> Booking:
    try:
        booking = await lifecycle.get_booking(booking_id)
        if booking is None:
            raise NotFoundException("Booking", booking_id)
        return booking
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/{booking_id}/status", response_model=Booking, response_model_by_alias=True)
async def update_booking_status(
    booking_id: str = Path(..., min_length=1),
    payload: BookingStatusUpdate = Body(...),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> Booking:
    """
    Move a booking to its next status.

    `extra` accepts camelCase or snake_case field names, e.g.
    {"driverId": "...", "driverName": "..."} when a driver accepts.
    """
    try:
        extra = {to_snake(name): value for name, value in payload.extra.items()}
        await lifecycle.update_status(booking_id, payload.status, extra)
        booking = await lifecycle.get_booking(booking_id)
        if booking is None:
            raise NotFoundException("Booking", booking_id)
        return booking
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/cancel", response_model=Booking, response_model_by_alias=True)
async def cancel_booking(
    booking_id: str = Path(..., min_length=1),
    payload: BookingCancelRequest = Body(...),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> Booking:
    """
    Cancel a booking.

    Customers may cancel only while canCancel is true; adminOverride skips
    that check.
    """
    try:
        booking = await lifecycle.get_booking(booking_id)
        if booking is None:
            raise NotFoundException("Booking", booking_id)
        if not booking.can_cancel and not payload.admin_override:
            raise ValidationException(
                "Booking can no longer be cancelled",
                code="CANCELLATION_NOT_ALLOWED",
                details={"status": booking.status.value},
            )
        await lifecycle.cancel_booking(booking_id, payload.reason)
        return await lifecycle.get_booking(booking_id)
    except DomainException as e:
        handle_domain_exception(e)
