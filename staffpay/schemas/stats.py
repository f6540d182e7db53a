from pydantic import BaseModel

from staffpay.schemas.aggregate import GlobalTotal


class AutomaticBreakdown(BaseModel):
    """Collection-derived shortages and expenses, for audit visibility."""
    shortage_cents: int = 0
    expense_cents: int = 0
    pending_shortage_cents: int = 0
    pending_expense_cents: int = 0
    entry_count: int = 0


class CollaboratorStats(BaseModel):
    collaborator_id: str
    total_pending_cents: int = 0
    total_paid_historical_cents: int = 0
    payments_count: int = 0
    totals: GlobalTotal = GlobalTotal()
    automatic_breakdown: AutomaticBreakdown = AutomaticBreakdown()
