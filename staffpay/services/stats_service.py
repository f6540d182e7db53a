"""
StatsProjector - read-only per-collaborator summaries for dashboards.

Everything here is a snapshot built from the aggregator; nothing is written.
"""

from datetime import tzinfo
from typing import Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from staffpay.models.entry import LedgerEntry, PaymentState
from staffpay.repositories.entry_repo import EntryRepository
from staffpay.repositories.payment_repo import PaymentRepository
from staffpay.schemas.stats import AutomaticBreakdown, CollaboratorStats
from staffpay.services.ledger_aggregator import LedgerAggregator
from staffpay.utils.entry_classifier import AUTOMATIC_KINDS, classify


class StatsProjector:

    def __init__(self, db: AsyncIOMotorDatabase, tz: tzinfo | None = None):
        self.entries = EntryRepository(db)
        self.payments = PaymentRepository(db)
        self.aggregator = LedgerAggregator(tz)

    async def project(self, collaborator_ids: List[str]) -> List[CollaboratorStats]:
        """One record per distinct collaborator, in request order."""
        ids = list(dict.fromkeys(collaborator_ids))
        if not ids:
            return []

        entries = await self.entries.list_for_collaborators(ids)
        payment_counts = await self.payments.count_by_collaborator(ids)

        by_collaborator: Dict[str, List[LedgerEntry]] = {cid: [] for cid in ids}
        for entry in entries:
            if entry.collaborator_id in by_collaborator:
                by_collaborator[entry.collaborator_id].append(entry)

        return [
            self.summarize(cid, by_collaborator[cid], payment_counts.get(cid, 0))
            for cid in ids
        ]

    def summarize(
        self, collaborator_id: str, entries: List[LedgerEntry], payments_count: int = 0
    ) -> CollaboratorStats:
        entries = self.aggregator.for_collaborator(entries, collaborator_id)
        paid = [e for e in entries if e.payment_state == PaymentState.PAID]

        return CollaboratorStats(
            collaborator_id=collaborator_id,
            total_pending_cents=self.aggregator.payable_now(entries).payable_cents,
            total_paid_historical_cents=self.aggregator.aggregate_total(paid).payable_cents,
            payments_count=payments_count,
            totals=self.aggregator.aggregate_total(entries),
            automatic_breakdown=self.automatic_breakdown(entries)
        )

    @staticmethod
    def automatic_breakdown(entries: List[LedgerEntry]) -> AutomaticBreakdown:
        shortage = expense = pending_shortage = pending_expense = count = 0
        for entry in entries:
            c = classify(entry)
            if c.kind not in AUTOMATIC_KINDS:
                continue
            count += 1
            shortage += c.shortage_amount_cents
            expense += c.expense_amount_cents
            if entry.payment_state == PaymentState.PENDING:
                pending_shortage += c.shortage_amount_cents
                pending_expense += c.expense_amount_cents

        return AutomaticBreakdown(
            shortage_cents=shortage,
            expense_cents=expense,
            pending_shortage_cents=pending_shortage,
            pending_expense_cents=pending_expense,
            entry_count=count
        )
