from typing import List, Optional

from fastapi import APIRouter, Depends

from staffpay.core.auth import Operator, get_current_operator
from staffpay.db.mongo import get_db
from staffpay.schemas.payment import (
    PaymentCreate,
    PaymentDeleteResponse,
    PaymentPreviewRequest,
    PaymentPreviewResponse,
    PaymentResponse,
    PaymentVerification,
)
from staffpay.services.payment_service import PaymentReconciler

router = APIRouter()


@router.post("/preview", response_model=PaymentPreviewResponse)
async def preview_payment(
    preview_in: PaymentPreviewRequest,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Entries and totals a payment for the chosen days would cover."""
    selection = await PaymentReconciler(db).preview(
        preview_in.collaborator_id,
        days=preview_in.days,
        select_all=preview_in.select_all
    )
    return PaymentPreviewResponse(
        collaborator_id=preview_in.collaborator_id,
        selected_days=selection.selected_days,
        available_days=selection.available_days,
        entry_ids=selection.selected_entry_ids(),
        days=selection.preview_by_day(),
        total=selection.preview_total()
    )


@router.post("", response_model=PaymentResponse)
async def create_payment(
    payment_in: PaymentCreate,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Pay the selected entries and mark them paid."""
    payment = await PaymentReconciler(db).create(
        payment_in.collaborator_id,
        payment_in.entry_ids,
        method=payment_in.method,
        notes=payment_in.notes.strip(),
        payment_date=payment_in.payment_date,
        state=payment_in.state,
        created_by=current_operator.id
    )
    return PaymentResponse.from_payment(payment)


@router.get("", response_model=List[PaymentResponse])
async def list_payments(
    collaborator_id: Optional[str] = None,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    payments = await PaymentReconciler(db).list_for_collaborator(collaborator_id)
    return [PaymentResponse.from_payment(payment) for payment in payments]


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    payment = await PaymentReconciler(db).get(payment_id)
    return PaymentResponse.from_payment(payment)


@router.get("/{payment_id}/verify", response_model=PaymentVerification)
async def verify_payment(
    payment_id: str,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Recompute the payment from its entries."""
    return await PaymentReconciler(db).verify(payment_id)


@router.delete("/{payment_id}", response_model=PaymentDeleteResponse)
async def delete_payment(
    payment_id: str,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Delete a payment and return its entries to pending."""
    reverted = await PaymentReconciler(db).undo(payment_id)
    return PaymentDeleteResponse(payment_id=payment_id, reverted_entry_ids=reverted)
