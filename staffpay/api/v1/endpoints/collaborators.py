from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from staffpay.core.auth import Operator, get_current_operator
from staffpay.db.mongo import get_db
from staffpay.models.entry import PaymentState
from staffpay.schemas.aggregate import AggregateResponse
from staffpay.services.ledger_service import LedgerService

router = APIRouter()


@router.get("/{collaborator_id}/aggregate", response_model=AggregateResponse)
async def get_aggregate(
    collaborator_id: str,
    start: Optional[date] = Query(None, description="First calendar day (reference zone)"),
    end: Optional[date] = Query(None, description="Last calendar day, inclusive"),
    payment_state: Optional[PaymentState] = None,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Per-day and overall totals of a collaborator's ledger."""
    return await LedgerService(db).aggregate(collaborator_id, start, end, payment_state)
