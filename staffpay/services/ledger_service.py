from datetime import date, tzinfo
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from staffpay.core.config import settings
from staffpay.models.entry import PaymentState
from staffpay.repositories.entry_repo import EntryRepository
from staffpay.schemas.aggregate import AggregateResponse
from staffpay.schemas.entry import EntryFilters
from staffpay.services.ledger_aggregator import LedgerAggregator


class LedgerService:
    """Aggregated views of one collaborator's ledger."""

    def __init__(self, db: AsyncIOMotorDatabase, tz: tzinfo | None = None):
        self.entries = EntryRepository(db)
        self.aggregator = LedgerAggregator(tz)

    async def aggregate(
        self,
        collaborator_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        payment_state: Optional[PaymentState] = None
    ) -> AggregateResponse:
        """
        Day totals and overall total for a collaborator.

        Day totals and total cover every matching entry; payable_now_cents
        only counts the pending ones among them.
        """
        entries = []
        skip = 0
        while True:
            page = await self.entries.list_entries(EntryFilters(
                collaborator_id=collaborator_id,
                start=start,
                end=end,
                payment_state=payment_state,
                skip=skip,
                limit=settings.MAX_PAGE_SIZE
            ))
            entries.extend(page)
            if len(page) < settings.MAX_PAGE_SIZE:
                break
            skip += len(page)

        entries = self.aggregator.for_collaborator(entries, collaborator_id)
        return AggregateResponse(
            collaborator_id=collaborator_id,
            days=list(self.aggregator.aggregate_by_day(entries).values()),
            total=self.aggregator.aggregate_total(entries),
            payable_now_cents=self.aggregator.payable_now(entries).payable_cents
        )
