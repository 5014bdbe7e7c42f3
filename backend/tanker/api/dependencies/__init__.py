# backend/tanker/api/dependencies/__init__.py
from .services import get_adapter, get_booking_lifecycle, get_payment_coordinator

__all__ = ["get_adapter", "get_booking_lifecycle", "get_payment_coordinator"]
