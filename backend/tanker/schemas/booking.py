# backend/tanker/schemas/booking.py
"""Request and response schemas for bookings."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..core.enums import BookingStatus
from ..models import Address, Booking


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookingCreate(_CamelModel):
    """
    Data for a new booking.

    Range checks (non-negative prices, matching total) are done by
    BookingLifecycle so that they surface as ValidationException.
    """

    customer_id: Optional[str] = None
    customer_name: str = ""
    customer_phone: str = ""
    agency_id: Optional[str] = None
    agency_name: Optional[str] = None
    tanker_size: int
    quantity: int = 1
    base_price: float
    distance_charge: float
    total_price: Optional[float] = Field(
        None, description="Optional; must equal base_price + distance_charge when given"
    )
    delivery_address: Address
    distance: float = 0
    scheduled_for: Optional[datetime] = None
    is_immediate: bool = True


class BookingCreatedResponse(_CamelModel):
    id: str


class BookingStatusUpdate(_CamelModel):
    status: BookingStatus
    extra: Dict[str, Any] = Field(
        default_factory=dict, description="Fields merged with the transition, e.g. driver identity"
    )


class BookingCancelRequest(_CamelModel):
    reason: str = Field(..., min_length=1)
    admin_override: bool = False


class BookingListResponse(_CamelModel):
    items: List[Booking]
    total: int
