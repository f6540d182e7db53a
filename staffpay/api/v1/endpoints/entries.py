from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from staffpay.core.auth import Operator, get_current_operator
from staffpay.db.mongo import get_db
from staffpay.models.entry import EntryKind, EntryOrigin, PaymentState
from staffpay.repositories.entry_repo import EntryRepository
from staffpay.schemas.entry import EntryCreate, EntryFilters, EntryResponse, EntryUpdate

router = APIRouter()


@router.post("", response_model=EntryResponse)
async def create_entry(
    entry_data: EntryCreate,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Record a ledger entry for a collaborator."""
    repo = EntryRepository(db)
    entry = await repo.create_entry(entry_data, created_by=current_operator.id)
    return EntryResponse.from_entry(entry)


@router.get("", response_model=List[EntryResponse])
async def list_entries(
    collaborator_id: Optional[str] = None,
    start: Optional[date] = Query(None, description="First calendar day (reference zone)"),
    end: Optional[date] = Query(None, description="Last calendar day, inclusive"),
    kind: Optional[EntryKind] = None,
    payment_state: Optional[PaymentState] = None,
    origin: Optional[EntryOrigin] = None,
    newest_first: bool = False,
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """List ledger entries, ordered by management date."""
    repo = EntryRepository(db)
    entries = await repo.list_entries(EntryFilters(
        collaborator_id=collaborator_id,
        start=start,
        end=end,
        kind=kind,
        payment_state=payment_state,
        origin=origin,
        newest_first=newest_first,
        skip=skip,
        limit=limit
    ))
    return [EntryResponse.from_entry(entry) for entry in entries]


@router.get("/{entry_id}", response_model=EntryResponse)
async def get_entry(
    entry_id: str,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    repo = EntryRepository(db)
    entry = await repo.get_entry(entry_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ledger entry not found")
    return EntryResponse.from_entry(entry)


@router.patch("/{entry_id}", response_model=EntryResponse)
async def update_entry(
    entry_id: str,
    entry_data: EntryUpdate,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Update a pending entry. Paid entries are locked."""
    repo = EntryRepository(db)
    entry = await repo.update_entry(entry_id, entry_data)
    return EntryResponse.from_entry(entry)


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: str,
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Soft delete a pending entry."""
    repo = EntryRepository(db)
    await repo.delete_entry(entry_id)
    return {"success": True}
