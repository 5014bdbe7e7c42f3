# backend/tanker/models/__init__.py
"""Domain records for the tanker booking platform."""

from .address import Address
from .bank_account import BankAccount
from .booking import Booking
from .user import AdminUser, BaseUser, CustomerUser, DriverUser, User, user_adapter
from .vehicle import Vehicle

__all__ = [
    "Address",
    "AdminUser",
    "BankAccount",
    "BaseUser",
    "Booking",
    "CustomerUser",
    "DriverUser",
    "User",
    "Vehicle",
    "user_adapter",
]
