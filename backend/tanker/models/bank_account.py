# backend/tanker/models/bank_account.py
from typing import Optional

from pydantic import Field

from ..core.timezone_utils import utc_now
from .base import DomainRecord, UtcDatetime


class BankAccount(DomainRecord):
    """Payout account of an agency admin, shown to customers as a QR code."""

    id: Optional[str] = None
    admin_id: str
    bank_name: str = ""
    account_holder_name: Optional[str] = None
    qr_code_image_url: Optional[str] = None
    is_default: bool = False
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)

    @property
    def owner_id(self) -> str:
        return self.admin_id
