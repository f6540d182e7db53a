"""
Payment model - a bundle of ledger entries paid out together.

Design principles:
- entry_ids is frozen at creation; the payment owns the entry links
- total_amount_cents is a cached sum, the entries stay authoritative
- days_paid is an audit breakdown rebuilt from entry_ids, one row per day
- Deleting a payment reverts its entries to pending
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, field_validator

from staffpay.models.base import MongoModel, PyObjectId, as_utc


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    DEPOSIT = "deposit"
    CHECK = "check"


class PaymentStatus(str, Enum):
    """Administrative status; independent of entry reconciliation."""
    PAID = "paid"
    PARTIAL = "partial"
    PENDING = "pending"


# Embedded document, no _id of its own
class DayPaid(BaseModel):
    day: str  # YYYY-MM-DD in the reference zone
    entry_ids: List[PyObjectId] = []
    pay_amount_cents: int = 0
    bonus_amount_cents: int = 0
    advance_amount_cents: int = 0
    shortage_amount_cents: int = 0
    expense_amount_cents: int = 0
    amount_cents: int = 0


class Payment(MongoModel):
    """
    Invariants:
    - entry_ids unique, and no entry belongs to two payments
    - sum(days_paid.amount_cents) == total_amount_cents > 0
    """
    collaborator_id: str
    payment_date: datetime
    method: PaymentMethod = PaymentMethod.CASH
    notes: str = ""
    state: PaymentStatus = PaymentStatus.PAID

    entry_ids: List[PyObjectId] = []
    days_paid: List[DayPaid] = []
    total_amount_cents: int = 0

    created_by: Optional[str] = None
    # Held while an undo is reverting the entries
    is_reverting: bool = False

    @field_validator("payment_date", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _missing_notes(cls, value):
        return "" if value is None else value
