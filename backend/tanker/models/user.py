# backend/tanker/models/user.py
"""
User records.

A user is one role view of a person: the same email may appear under several
roles (multi-role account). The role field is the discriminator.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from ..core.timezone_utils import utc_now
from .address import Address
from .base import DomainRecord, UtcDatetime


class BaseUser(DomainRecord):
    id: Optional[str] = None
    email: str
    password: str = ""
    name: str
    phone: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utc_now)

    @property
    def contact_key(self) -> str:
        """Case-insensitive identity used to group role records of one person."""
        return self.email.strip().lower()


class CustomerUser(BaseUser):
    role: Literal["customer"] = "customer"
    saved_addresses: List[Address] = Field(default_factory=list)


class DriverUser(BaseUser):
    role: Literal["driver"] = "driver"
    vehicle_number: Optional[str] = None
    license_number: Optional[str] = None
    license_expiry: Optional[UtcDatetime] = None
    driver_license_image: Optional[str] = None
    vehicle_registration_image: Optional[str] = None
    is_approved: bool = False
    is_available: bool = False
    total_earnings: float = 0
    completed_orders: int = 0
    created_by_admin: bool = False
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None


class AdminUser(BaseUser):
    role: Literal["admin"] = "admin"
    business_name: Optional[str] = None


User = Annotated[Union[CustomerUser, DriverUser, AdminUser], Field(discriminator="role")]

user_adapter: TypeAdapter[User] = TypeAdapter(User)

USER_FIELD_NAMES = frozenset().union(
    CustomerUser.field_names(), DriverUser.field_names(), AdminUser.field_names()
)
