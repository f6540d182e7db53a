from datetime import date
from typing import Dict, List

from pydantic import BaseModel, ConfigDict


class DayTotal(BaseModel):
    """Totals of one calendar day. expense is informational only."""
    day: date
    pay_amount_cents: int = 0
    bonus_amount_cents: int = 0
    advance_amount_cents: int = 0
    shortage_amount_cents: int = 0
    expense_amount_cents: int = 0
    payable_cents: int = 0
    entry_count: int = 0
    entry_ids: List[str] = []
    has_automatic_entries: bool = False

    model_config = ConfigDict(frozen=True)


class GlobalTotal(BaseModel):
    pay_amount_cents: int = 0
    bonus_amount_cents: int = 0
    advance_amount_cents: int = 0
    shortage_amount_cents: int = 0
    expense_amount_cents: int = 0
    payable_cents: int = 0
    entry_count: int = 0
    count_by_kind: Dict[str, int] = {}

    model_config = ConfigDict(frozen=True)


class AggregateResponse(BaseModel):
    """Snapshot of a collaborator's ledger; never the source of truth for payment state."""
    collaborator_id: str
    days: List[DayTotal]
    total: GlobalTotal
    payable_now_cents: int
