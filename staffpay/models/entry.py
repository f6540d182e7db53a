"""
Ledger entry model - one dated, typed contribution to a collaborator's pay.

Design principles:
- Entries are created independently (manual actions or collection reconciliation)
- Every amount field exists on every entry; the ones a kind does not use are 0
- All amounts in integer cents, never negative
- Payment state: pending → paid (by a payment) → pending (payment undone)
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import field_validator

from staffpay.models.base import MongoModel, PyObjectId, as_utc


class EntryKind(str, Enum):
    DAILY_PAY = "daily_pay"
    BONUS_MANUAL = "bonus_manual"
    BONUS_GOAL = "bonus_goal"
    ADVANCE_MANUAL = "advance_manual"
    ADJUSTMENT_MANUAL = "adjustment_manual"
    SHORTAGE_AUTOMATIC = "shortage_automatic"
    SHORTAGE_MANUAL = "shortage_manual"
    EXPENSE_AUTOMATIC = "expense_automatic"
    LATE_PENALTY = "late_penalty"


class EntryOrigin(str, Enum):
    MANUAL = "manual"
    AUTOMATIC_FROM_COLLECTION = "automatic_from_collection"


class PaymentState(str, Enum):
    PENDING = "pending"
    PAID = "paid"


AMOUNT_FIELDS = (
    "pay_amount_cents",
    "bonus_amount_cents",
    "advance_amount_cents",
    "shortage_amount_cents",
    "expense_amount_cents",
)


class LedgerEntry(MongoModel):
    """
    A single ledger entry.

    Invariants:
    - payment_state = paid iff payment_ref is set
    - collaborator_id never changes
    - kind is None only for legacy documents (read as daily pay)
    """
    collaborator_id: str
    date: datetime  # Management date the entry is attributed to
    kind: Optional[EntryKind] = None

    pay_amount_cents: int = 0
    bonus_amount_cents: int = 0
    advance_amount_cents: int = 0
    shortage_amount_cents: int = 0
    expense_amount_cents: int = 0

    origin: EntryOrigin = EntryOrigin.MANUAL
    payment_state: PaymentState = PaymentState.PENDING
    payment_ref: Optional[PyObjectId] = None

    description: str = ""
    created_by: Optional[str] = None
    is_deleted: bool = False

    @field_validator(*AMOUNT_FIELDS, mode="before")
    @classmethod
    def _missing_amount_is_zero(cls, value):
        return 0 if value is None else value

    @field_validator("date", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("description", mode="before")
    @classmethod
    def _missing_description(cls, value):
        return "" if value is None else value

    @property
    def is_pending(self) -> bool:
        return self.payment_state == PaymentState.PENDING
