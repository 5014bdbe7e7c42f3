# backend/tanker/models/vehicle.py
from typing import Optional

from pydantic import Field

from ..core.timezone_utils import utc_now
from .base import DomainRecord, UtcDatetime


class Vehicle(DomainRecord):
    """Tanker truck owned by an agency (admin user)."""

    id: Optional[str] = None
    agency_id: str
    vehicle_number: str
    insurance_company_name: str = ""
    insurance_expiry_date: Optional[UtcDatetime] = None
    vehicle_capacity: int = 0
    # Nullable: agencies may price per booking instead of per vehicle
    amount: Optional[float] = None
    is_default: bool = False
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)

    @property
    def owner_id(self) -> str:
        return self.agency_id
