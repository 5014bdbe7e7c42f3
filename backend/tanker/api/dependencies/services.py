# backend/tanker/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

The application lifespan constructs one adapter and one instance of each
service and stores them on app.state; these functions hand them to routes.
Tests override them through app.dependency_overrides.
"""

from fastapi import Request

from ...repositories.base_repository import PersistenceAdapter
from ...services.booking_lifecycle import BookingLifecycle
from ...services.payment_coordinator import PaymentCoordinator


def get_adapter(request: Request) -> PersistenceAdapter:
    return request.app.state.adapter


def get_booking_lifecycle(request: Request) -> BookingLifecycle:
    """Get the booking lifecycle service wired at startup."""
    return request.app.state.booking_lifecycle


def get_payment_coordinator(request: Request) -> PaymentCoordinator:
    """Get the payment coordinator wired at startup."""
    return request.app.state.payment_coordinator
