# backend/tanker/repositories/remote/tables.py
"""
ORM models for the remote relational store.

Schema notes:
- users.id is the internal row identifier; users.auth_id links the row to an
  external identity provider and is what callers see as the user id when set.
- A person holds one user_roles row per role and one profile row (customers,
  drivers, admins) per role.
- Every foreign key to users stores users.id, never auth_id.
- bookings.delivery_address is a JSON snapshot, not normalized columns.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from ...core.ulid_helper import generate_ulid
from .database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    auth_id = Column(String(64), unique=True, nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False, default="")
    name = Column(String(200), nullable=False)
    phone = Column(String(32), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    def __repr__(self):
        return f"<UserRow {self.id} {self.email}>"


class UserRoleRow(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(String(36), primary_key=True, default=generate_ulid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class CustomerRow(Base):
    __tablename__ = "customers"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class DriverRow(Base):
    __tablename__ = "drivers"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    vehicle_number = Column(String(32), nullable=True)
    license_number = Column(String(64), nullable=True)
    license_expiry = Column(DateTime(timezone=True), nullable=True)
    driver_license_image_url = Column(Text, nullable=True)
    vehicle_registration_image_url = Column(Text, nullable=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    is_available = Column(Boolean, nullable=False, default=False)
    total_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    completed_orders = Column(Integer, nullable=False, default=0)
    created_by_admin = Column(Boolean, nullable=False, default=False)
    emergency_contact_name = Column(String(200), nullable=True)
    emergency_contact_phone = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class AdminRow(Base):
    __tablename__ = "admins"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    business_name = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class AddressRow(Base):
    __tablename__ = "addresses"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    address = Column(Text, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class BookingRow(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    customer_name = Column(String(200), nullable=False, default="")
    customer_phone = Column(String(32), nullable=False, default="")
    agency_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    agency_name = Column(String(200), nullable=True)
    driver_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    driver_name = Column(String(200), nullable=True)
    driver_phone = Column(String(32), nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    tanker_size = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    base_price = Column(Numeric(12, 2), nullable=False)
    distance_charge = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    delivery_address = Column(JSON, nullable=False)
    distance = Column(Float, nullable=False, default=0)
    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    is_immediate = Column(Boolean, nullable=False, default=True)
    payment_status = Column(String(20), nullable=False, default="pending")
    payment_id = Column(String(128), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    can_cancel = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)


class VehicleRow(Base):
    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    agency_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_number = Column(String(32), nullable=False)
    insurance_company_name = Column(String(200), nullable=False, default="")
    insurance_expiry_date = Column(DateTime(timezone=True), nullable=True)
    vehicle_capacity = Column(Integer, nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class BankAccountRow(Base):
    __tablename__ = "bank_accounts"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    admin_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    bank_name = Column(String(200), nullable=True)
    account_holder_name = Column(String(200), nullable=True)
    qr_code_image_url = Column(Text, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


ALL_TABLES = (
    "users",
    "user_roles",
    "customers",
    "drivers",
    "admins",
    "addresses",
    "vehicles",
    "bookings",
    "bank_accounts",
)
