"""
LedgerAggregator - per-day and overall totals of ledger entries.

Core algorithm:
1. Classify each entry (signed contribution, expense excluded)
2. Bucket it under its calendar day in the reference zone
3. Fold the day's contributions into one DayTotal; fold all into a GlobalTotal

Amounts are integer cents, so totals do not depend on entry order.
"""

from datetime import date, tzinfo
from typing import Dict, Iterable, List

from pydantic import BaseModel, Field

from staffpay.models.entry import LedgerEntry, PaymentState
from staffpay.schemas.aggregate import DayTotal, GlobalTotal
from staffpay.utils.date_bucketing import calendar_day, get_zone
from staffpay.utils.entry_classifier import classify, is_automatic


class _Accumulator(BaseModel):
    """Running sums for one day, or for a whole entry set."""
    pay: int = 0
    bonus: int = 0
    advance: int = 0
    shortage: int = 0
    expense: int = 0
    payable: int = 0
    entry_ids: List[str] = Field(default_factory=list)
    kinds: Dict[str, int] = Field(default_factory=dict)
    has_automatic: bool = False

    def add(self, entry: LedgerEntry) -> None:
        c = classify(entry)
        self.pay += c.pay_amount_cents
        self.bonus += c.bonus_amount_cents
        self.advance += c.advance_amount_cents
        self.shortage += c.shortage_amount_cents
        self.expense += c.expense_amount_cents
        self.payable += c.payable_cents
        self.entry_ids.append(str(entry.id))
        self.kinds[c.kind.value] = self.kinds.get(c.kind.value, 0) + 1
        self.has_automatic = self.has_automatic or is_automatic(entry)

    def day_total(self, day: date) -> DayTotal:
        return DayTotal(
            day=day,
            pay_amount_cents=self.pay,
            bonus_amount_cents=self.bonus,
            advance_amount_cents=self.advance,
            shortage_amount_cents=self.shortage,
            expense_amount_cents=self.expense,
            payable_cents=self.payable,
            entry_count=len(self.entry_ids),
            entry_ids=list(self.entry_ids),
            has_automatic_entries=self.has_automatic
        )

    def global_total(self) -> GlobalTotal:
        return GlobalTotal(
            pay_amount_cents=self.pay,
            bonus_amount_cents=self.bonus,
            advance_amount_cents=self.advance,
            shortage_amount_cents=self.shortage,
            expense_amount_cents=self.expense,
            payable_cents=self.payable,
            entry_count=len(self.entry_ids),
            count_by_kind=dict(self.kinds)
        )


class LedgerAggregator:
    """Pure aggregation over already loaded entries."""

    def __init__(self, tz: tzinfo | None = None):
        self.tz = tz or get_zone()

    def aggregate_by_day(self, entries: Iterable[LedgerEntry]) -> Dict[date, DayTotal]:
        """
        Totals per calendar day, ordered by day.

        Returns: { day: DayTotal }
        """
        accumulators: Dict[date, _Accumulator] = {}
        for entry in entries:
            day = calendar_day(entry.date, self.tz)
            accumulators.setdefault(day, _Accumulator()).add(entry)
        return {
            day: accumulators[day].day_total(day)
            for day in sorted(accumulators)
        }

    def aggregate_total(self, entries: Iterable[LedgerEntry]) -> GlobalTotal:
        """Sum of every entry's contribution; equals the sum of the day totals."""
        acc = _Accumulator()
        for entry in entries:
            acc.add(entry)
        return acc.global_total()

    def payable_now(self, entries: Iterable[LedgerEntry]) -> GlobalTotal:
        """What is owed right now: paid entries are already settled."""
        return self.aggregate_total(self.pending_only(entries))

    @staticmethod
    def pending_only(entries: Iterable[LedgerEntry]) -> List[LedgerEntry]:
        return [e for e in entries if e.payment_state == PaymentState.PENDING]

    @staticmethod
    def for_collaborator(entries: Iterable[LedgerEntry], collaborator_id: str) -> List[LedgerEntry]:
        return [e for e in entries if e.collaborator_id == collaborator_id]
