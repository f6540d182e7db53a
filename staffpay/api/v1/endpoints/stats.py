from typing import List

from fastapi import APIRouter, Depends, Query

from staffpay.core.auth import Operator, get_current_operator
from staffpay.db.mongo import get_db
from staffpay.schemas.stats import CollaboratorStats
from staffpay.services.stats_service import StatsProjector

router = APIRouter()


@router.get("", response_model=List[CollaboratorStats])
async def get_stats(
    collaborator_ids: List[str] = Query(..., min_length=1),
    current_operator: Operator = Depends(get_current_operator),
    db = Depends(get_db)
):
    """Bulk summaries; collaborators without entries get zeros."""
    return await StatsProjector(db).project(collaborator_ids)
