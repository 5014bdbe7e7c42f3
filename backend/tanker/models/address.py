# backend/tanker/models/address.py
from typing import Optional

from .base import DomainRecord


class Address(DomainRecord):
    """Delivery location. Stored inline on bookings and in a customer's saved list."""

    id: Optional[str] = None
    address: str
    latitude: float
    longitude: float
    is_default: bool = False

    def same_location(self, other: "Address") -> bool:
        return (
            self.address.strip().lower() == other.address.strip().lower()
            and self.latitude == other.latitude
            and self.longitude == other.longitude
        )
