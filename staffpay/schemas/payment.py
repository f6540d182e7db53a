from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from staffpay.models.payment import Payment, PaymentMethod, PaymentStatus
from staffpay.schemas.aggregate import DayTotal, GlobalTotal


class PaymentCreate(BaseModel):
    collaborator_id: str = Field(..., min_length=1)
    entry_ids: List[str]
    method: PaymentMethod = PaymentMethod.CASH
    notes: str = Field("", max_length=1000)
    payment_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    state: PaymentStatus = PaymentStatus.PAID


class PaymentPreviewRequest(BaseModel):
    """Days to toggle on an empty selection, or select_all for every pending day."""
    collaborator_id: str = Field(..., min_length=1)
    days: List[date] = []
    select_all: bool = False


class PaymentPreviewResponse(BaseModel):
    collaborator_id: str
    selected_days: List[date]
    available_days: List[date]
    entry_ids: List[str]
    days: List[DayTotal]
    total: GlobalTotal


class DayPaidResponse(BaseModel):
    day: str
    entry_ids: List[str]
    pay_amount_cents: int
    bonus_amount_cents: int
    advance_amount_cents: int
    shortage_amount_cents: int
    expense_amount_cents: int
    amount_cents: int


class PaymentResponse(BaseModel):
    id: str
    collaborator_id: str
    payment_date: datetime
    method: PaymentMethod
    notes: str
    state: PaymentStatus
    entry_ids: List[str]
    days_paid: List[DayPaidResponse]
    total_amount_cents: int
    created_by: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=str(payment.id),
            collaborator_id=payment.collaborator_id,
            payment_date=payment.payment_date,
            method=payment.method,
            notes=payment.notes,
            state=payment.state,
            entry_ids=[str(entry_id) for entry_id in payment.entry_ids],
            days_paid=[
                DayPaidResponse(
                    **day.model_dump(exclude={"entry_ids"}),
                    entry_ids=[str(entry_id) for entry_id in day.entry_ids]
                )
                for day in payment.days_paid
            ],
            total_amount_cents=payment.total_amount_cents,
            created_by=payment.created_by,
            created_at=payment.created_at
        )


class PaymentDeleteResponse(BaseModel):
    payment_id: str
    reverted_entry_ids: List[str]


class PaymentVerification(BaseModel):
    """Recomputation of a payment from its entries."""
    payment_id: str
    stored_total_cents: int
    recomputed_total_cents: int
    days_total_cents: int
    consistent: bool
    issues: List[str] = []
