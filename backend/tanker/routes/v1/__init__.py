# backend/tanker/routes/v1/__init__.py
from . import bookings, payments

__all__ = ["bookings", "payments"]
