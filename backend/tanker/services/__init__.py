# backend/tanker/services/__init__.py
"""
Service layer for the tanker platform.

Services hold the business rules and talk to storage only through the
PersistenceAdapter they are constructed with.
"""

from .base import BaseService
from .booking_lifecycle import BookingLifecycle
from .owned_resource_service import BankAccountService, OwnedResourceService, VehicleService
from .payment_coordinator import PaymentCoordinator

__all__ = [
    "BankAccountService",
    "BaseService",
    "BookingLifecycle",
    "OwnedResourceService",
    "PaymentCoordinator",
    "VehicleService",
]
