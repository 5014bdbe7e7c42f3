# backend/tanker/models/booking.py
from typing import Optional

from pydantic import Field

from ..core.enums import BookingStatus, PaymentStatus
from .address import Address
from .base import DomainRecord, UtcDatetime


class Booking(DomainRecord):
    """
    A water-tanker delivery order.

    Prices are non-negative and total_price equals base_price + distance_charge
    at creation. accepted_at and delivered_at are written once, on the
    matching transition, and never cleared.
    """

    id: Optional[str] = None
    customer_id: str
    customer_name: str = ""
    customer_phone: str = ""
    agency_id: Optional[str] = None
    agency_name: Optional[str] = None
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    tanker_size: int
    quantity: int = 1
    base_price: float = Field(ge=0)
    distance_charge: float = Field(ge=0)
    total_price: float = Field(ge=0)
    delivery_address: Address
    distance: float = 0
    scheduled_for: Optional[UtcDatetime] = None
    is_immediate: bool = True
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    can_cancel: bool = True
    created_at: UtcDatetime
    updated_at: UtcDatetime
    accepted_at: Optional[UtcDatetime] = None
    delivered_at: Optional[UtcDatetime] = None
