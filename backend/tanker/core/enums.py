# backend/tanker/core/enums.py
"""
Core enums for the tanker booking platform.

Values are the wire values stored on-device and in the remote store, so
renaming a member is a data migration.
"""

from enum import Enum


class UserRole(str, Enum):
    """Role a user record acts under. One person may hold several."""

    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    """
    Booking lifecycle states.

    pending -> accepted -> in_transit -> delivered, with cancelled reachable
    from pending only. delivered and cancelled are terminal.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.DELIVERED, BookingStatus.CANCELLED)


class PaymentStatus(str, Enum):
    """Payment state of a booking, independent of its delivery status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ChangeType(str, Enum):
    """Kind of row change carried by a change-feed event."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
