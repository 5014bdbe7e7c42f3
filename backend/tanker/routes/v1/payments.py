# backend/tanker/routes/v1/payments.py
"""
Payments routes - API v1

Cash-on-delivery bookkeeping under /api/v1/payments. Payment outcomes are
returned as data: a failed payment is a 200 response with success=false.

Endpoints:
    POST /{booking_id}/cod     → Record a cash-on-delivery payment
    POST /{booking_id}/confirm → Confirm the cash was collected
    POST /{booking_id}/online  → Online payments (not available)
"""

import logging

from fastapi import APIRouter, Body, Depends, Path

from ...api.dependencies import get_payment_coordinator
from ...schemas.payment import CodPaymentRequest, PaymentResult
from ...services.payment_coordinator import PaymentCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


@router.post("/{booking_id}/cod", response_model=PaymentResult, response_model_by_alias=True)
async def process_cod_payment(
    booking_id: str = Path(..., min_length=1),
    payload: CodPaymentRequest = Body(...),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentResult:
    return await coordinator.process_payment(booking_id, payload.amount)


@router.post("/{booking_id}/confirm", response_model=PaymentResult, response_model_by_alias=True)
async def confirm_cod_payment(
    booking_id: str = Path(..., min_length=1),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentResult:
    return await coordinator.confirm_payment(booking_id)


@router.post("/{booking_id}/online", response_model=PaymentResult, response_model_by_alias=True)
async def process_online_payment(
    booking_id: str = Path(..., min_length=1),
    payload: CodPaymentRequest = Body(...),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentResult:
    return await coordinator.process_online_payment(booking_id, payload.amount)
