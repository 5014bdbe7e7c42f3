# backend/tanker/repositories/remote/transformers.py
"""
Explicit conversions between domain records and remote rows.

This is the only place where storage rows cross into domain types. Foreign
key values arrive here already translated (internal ids on the way in,
external ids on the way out); the functions below only rename columns and
convert value types.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from pydantic import BaseModel
from sqlalchemy import inspect as sa_inspect

from ...models import (
    Address,
    AdminUser,
    BankAccount,
    Booking,
    CustomerUser,
    DriverUser,
    User,
    Vehicle,
)
from ...models.user import BaseUser
from .tables import (
    AddressRow,
    AdminRow,
    BankAccountRow,
    BookingRow,
    DriverRow,
    UserRow,
    VehicleRow,
)

# Domain attribute -> column, where they differ
DRIVER_COLUMN_NAMES = {
    "driver_license_image": "driver_license_image_url",
    "vehicle_registration_image": "vehicle_registration_image_url",
}
USER_COLUMN_NAMES = {"password": "password_hash"}

USER_BASE_FIELDS = frozenset({"email", "password", "name", "phone", "created_at"})
PROFILE_FIELDS: Dict[str, frozenset] = {
    "customer": frozenset({"saved_addresses"}),
    "driver": frozenset(DriverUser.model_fields) - frozenset(BaseUser.model_fields) - {"role"},
    "admin": frozenset({"business_name"}),
}

BOOKING_REFERENCE_FIELDS = ("customer_id", "driver_id", "agency_id")
VEHICLE_REFERENCE_FIELDS = ("agency_id",)
BANK_ACCOUNT_REFERENCE_FIELDS = ("admin_id",)


def to_column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def _number(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(row: Any) -> Dict[str, Any]:
    """Plain dict of every mapped column of an ORM row."""
    mapper = sa_inspect(row).mapper
    return {attr.key: _number(getattr(row, attr.key)) for attr in mapper.column_attrs}


def columns_for(values: Mapping[str, Any], renames: Mapping[str, str]) -> Dict[str, Any]:
    return {renames.get(name, name): to_column_value(value) for name, value in values.items()}


# Users


def external_user_id(row: UserRow) -> str:
    """The id callers see: the external identity when linked, else the row id."""
    return row.auth_id or row.id


def user_row_values(user: BaseUser) -> Dict[str, Any]:
    return {
        "email": user.email.strip().lower(),
        "password_hash": user.password,
        "name": user.name,
        "phone": user.phone,
        "created_at": user.created_at,
    }


def profile_values(user: User) -> Dict[str, Any]:
    """Role-specific profile columns (customers have none besides addresses)."""
    if isinstance(user, DriverUser):
        fields = user.model_dump(include=set(PROFILE_FIELDS["driver"]))
        return columns_for(fields, DRIVER_COLUMN_NAMES)
    if isinstance(user, AdminUser):
        return {"business_name": user.business_name}
    return {}


def user_from_rows(
    row: UserRow,
    role: str,
    profile: Optional[Any] = None,
    addresses: Iterable[AddressRow] = (),
) -> User:
    base = {
        "id": external_user_id(row),
        "email": row.email,
        "password": row.password_hash or "",
        "name": row.name,
        "phone": row.phone,
        "created_at": row.created_at,
    }
    if role == "driver":
        extra: Dict[str, Any] = {}
        if isinstance(profile, DriverRow):
            for field in PROFILE_FIELDS["driver"]:
                extra[field] = _number(getattr(profile, DRIVER_COLUMN_NAMES.get(field, field)))
        return DriverUser(**base, **extra)
    if role == "admin":
        business_name = profile.business_name if isinstance(profile, AdminRow) else None
        return AdminUser(**base, business_name=business_name)
    return CustomerUser(**base, saved_addresses=[address_from_row(a) for a in addresses])


# Addresses


def address_from_row(row: AddressRow) -> Address:
    return Address(
        id=row.id,
        address=row.address,
        latitude=row.latitude,
        longitude=row.longitude,
        is_default=row.is_default,
    )


def address_row_values(address: Address, user_id: str) -> Dict[str, Any]:
    return {
        "user_id": user_id,
        "address": address.address,
        "latitude": address.latitude,
        "longitude": address.longitude,
        "is_default": address.is_default,
    }


# Bookings


def booking_row_values(booking: Booking, refs: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    values = columns_for(booking.model_dump(exclude={"id"}), {})
    values["delivery_address"] = booking.delivery_address.model_dump(mode="json", by_alias=True)
    values.update(refs)
    return values


def booking_from_row(row: BookingRow, refs: Mapping[str, Optional[str]]) -> Booking:
    data = row_to_dict(row)
    data.update(refs)
    return Booking.model_validate(data)


# Vehicles and bank accounts


def vehicle_row_values(vehicle: Vehicle, refs: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    values = columns_for(vehicle.model_dump(exclude={"id"}), {})
    values.update(refs)
    return values


def vehicle_from_row(row: VehicleRow, refs: Mapping[str, Optional[str]]) -> Vehicle:
    data = row_to_dict(row)
    data.update(refs)
    return Vehicle.model_validate(data)


def bank_account_row_values(account: BankAccount, refs: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    values = columns_for(account.model_dump(exclude={"id"}), {})
    values.update(refs)
    return values


def bank_account_from_row(row: BankAccountRow, refs: Mapping[str, Optional[str]]) -> BankAccount:
    data = row_to_dict(row)
    data.update(refs)
    return BankAccount.model_validate(data)
