# backend/tanker/schemas/payment.py
"""Payment schemas. Payment outcomes are data, never exceptions."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PaymentResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    payment_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, payment_id: str) -> "PaymentResult":
        return cls(success=True, payment_id=payment_id)

    @classmethod
    def failed(cls, error: str) -> "PaymentResult":
        return cls(success=False, error=error)


class CodPaymentRequest(BaseModel):
    amount: float = Field(..., description="Amount collected on delivery")
