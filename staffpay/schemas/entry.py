from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from staffpay.models.entry import EntryKind, EntryOrigin, LedgerEntry, PaymentState
from staffpay.utils.entry_classifier import contribution, describe_kind, is_automatic, resolve_kind


class EntryAmounts(BaseModel):
    """Amount fields shared by create and update requests (integer cents)."""
    pay_amount_cents: int = 0
    bonus_amount_cents: int = 0
    advance_amount_cents: int = 0
    shortage_amount_cents: int = 0
    expense_amount_cents: int = 0


class EntryCreate(EntryAmounts):
    collaborator_id: str = Field(..., min_length=1)
    date: datetime
    kind: EntryKind = EntryKind.DAILY_PAY
    origin: Optional[EntryOrigin] = None
    description: str = Field("", max_length=500)


class EntryUpdate(BaseModel):
    """Partial update of a pending entry. Ownership and state are not editable."""
    date: Optional[datetime] = None
    kind: Optional[EntryKind] = None
    pay_amount_cents: Optional[int] = None
    bonus_amount_cents: Optional[int] = None
    advance_amount_cents: Optional[int] = None
    shortage_amount_cents: Optional[int] = None
    expense_amount_cents: Optional[int] = None
    description: Optional[str] = Field(None, max_length=500)


class EntryFilters(BaseModel):
    collaborator_id: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None
    kind: Optional[EntryKind] = None
    payment_state: Optional[PaymentState] = None
    origin: Optional[EntryOrigin] = None
    newest_first: bool = False
    skip: int = Field(0, ge=0)
    limit: Optional[int] = Field(None, ge=1)


class EntryResponse(BaseModel):
    id: str
    collaborator_id: str
    date: datetime
    kind: EntryKind
    label: str
    pay_amount_cents: int
    bonus_amount_cents: int
    advance_amount_cents: int
    shortage_amount_cents: int
    expense_amount_cents: int
    payable_cents: int
    origin: EntryOrigin
    is_automatic: bool
    payment_state: PaymentState
    payment_ref: Optional[str] = None
    description: str
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "EntryResponse":
        return cls(
            id=str(entry.id),
            collaborator_id=entry.collaborator_id,
            date=entry.date,
            kind=resolve_kind(entry),
            label=describe_kind(entry),
            pay_amount_cents=entry.pay_amount_cents,
            bonus_amount_cents=entry.bonus_amount_cents,
            advance_amount_cents=entry.advance_amount_cents,
            shortage_amount_cents=entry.shortage_amount_cents,
            expense_amount_cents=entry.expense_amount_cents,
            payable_cents=contribution(entry),
            origin=entry.origin,
            is_automatic=is_automatic(entry),
            payment_state=entry.payment_state,
            payment_ref=str(entry.payment_ref) if entry.payment_ref else None,
            description=entry.description,
            created_by=entry.created_by,
            created_at=entry.created_at,
            updated_at=entry.updated_at
        )
