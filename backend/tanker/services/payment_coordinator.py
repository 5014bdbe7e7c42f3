# backend/tanker/services/payment_coordinator.py
"""
Cash-on-delivery payment bookkeeping.

Payment outcomes are business data: every public method returns a
PaymentResult and never raises, storage failures included. Repeated calls
succeed each time and overwrite payment_id with the latest value.
"""

import logging
import secrets
import time
from typing import Optional

from ..core.enums import PaymentStatus
from ..core.timezone_utils import utc_now
from ..repositories.base_repository import PersistenceAdapter
from ..schemas.payment import PaymentResult
from .base import BaseService

logger = logging.getLogger(__name__)

BOOKING_NOT_FOUND = "Booking not found"
ONLINE_PAYMENTS_UNAVAILABLE = "Online payments not implemented in MVP. Use COD instead."


def _payment_suffix() -> str:
    return f"{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def cod_payment_id(booking_id: str) -> str:
    return f"cod_{booking_id}_{_payment_suffix()}"


def cod_confirmation_id(booking_id: str) -> str:
    return f"cod_confirmed_{booking_id}_{_payment_suffix()}"


class PaymentCoordinator(BaseService):
    """Records COD payments on bookings through the persistence adapter."""

    def __init__(self, adapter: PersistenceAdapter):
        super().__init__(adapter)

    @BaseService.measure_operation("process_cod_payment")
    async def process_payment(self, booking_id: str, amount: float) -> PaymentResult:
        """
        Register a COD payment for a booking; payment_status stays pending
        until the driver confirms collection.
        """
        try:
            if amount is None or amount < 0:
                return PaymentResult.failed("Payment amount must not be negative")
            booking = await self.adapter.bookings.get(booking_id)
            if booking is None:
                return PaymentResult.failed(BOOKING_NOT_FOUND)

            payment_id = cod_payment_id(booking_id)
            await self.adapter.bookings.update(
                booking_id, {"payment_id": payment_id, "updated_at": utc_now()}
            )
            self.logger.info(f"COD payment {payment_id} registered for booking {booking_id} ({amount})")
            return PaymentResult.ok(payment_id)
        except Exception as e:
            self.logger.error(f"COD payment failed for booking {booking_id}: {str(e)}")
            return PaymentResult.failed(str(e) or "Payment processing failed")

    @BaseService.measure_operation("confirm_cod_payment")
    async def confirm_payment(self, booking_id: str) -> PaymentResult:
        """Mark the COD payment collected: payment_status completed, new confirmation id."""
        try:
            booking = await self.adapter.bookings.get(booking_id)
            if booking is None:
                return PaymentResult.failed(BOOKING_NOT_FOUND)

            payment_id = cod_confirmation_id(booking_id)
            await self.adapter.bookings.update(
                booking_id,
                {
                    "payment_id": payment_id,
                    "payment_status": PaymentStatus.COMPLETED,
                    "updated_at": utc_now(),
                },
            )
            self.logger.info(f"COD payment confirmed for booking {booking_id}: {payment_id}")
            return PaymentResult.ok(payment_id)
        except Exception as e:
            self.logger.error(f"COD confirmation failed for booking {booking_id}: {str(e)}")
            return PaymentResult.failed(str(e) or "Payment confirmation failed")

    async def process_online_payment(
        self, booking_id: str, amount: float, payment_method: Optional[str] = None
    ) -> PaymentResult:
        """Online payments are not part of this release; always a failed result."""
        self.logger.info(
            f"Rejected online payment ({payment_method or 'unspecified'}) for booking {booking_id}"
        )
        return PaymentResult.failed(ONLINE_PAYMENTS_UNAVAILABLE)
