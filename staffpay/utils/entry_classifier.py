"""
Entry classification - how each ledger entry moves a collaborator's balance.

    payable = pay + bonus - shortage - advance

Expenses are recorded for reference only and never enter the payable
amount, whatever their size. The function is total: missing amounts are 0
and entries stored before kinds existed are daily pay (see resolve_kind).
"""

from typing import Dict, FrozenSet

from pydantic import BaseModel, ConfigDict

from staffpay.models.entry import EntryKind, EntryOrigin, LedgerEntry

PAY = "pay_amount_cents"
BONUS = "bonus_amount_cents"
ADVANCE = "advance_amount_cents"
SHORTAGE = "shortage_amount_cents"
EXPENSE = "expense_amount_cents"

# Amount fields each kind may carry. Anything else must be 0.
KIND_AMOUNT_FIELDS: Dict[EntryKind, FrozenSet[str]] = {
    EntryKind.DAILY_PAY: frozenset({PAY, BONUS, ADVANCE}),
    EntryKind.BONUS_MANUAL: frozenset({BONUS}),
    EntryKind.BONUS_GOAL: frozenset({BONUS}),
    EntryKind.ADVANCE_MANUAL: frozenset({ADVANCE}),
    EntryKind.ADJUSTMENT_MANUAL: frozenset({BONUS, ADVANCE}),
    EntryKind.SHORTAGE_AUTOMATIC: frozenset({SHORTAGE}),
    EntryKind.SHORTAGE_MANUAL: frozenset({SHORTAGE}),
    EntryKind.EXPENSE_AUTOMATIC: frozenset({EXPENSE}),
    EntryKind.LATE_PENALTY: frozenset({SHORTAGE}),
}

_unclassified = set(EntryKind) - set(KIND_AMOUNT_FIELDS)
if _unclassified:
    raise RuntimeError(f"Entry kinds without classification: {sorted(k.value for k in _unclassified)}")

AUTOMATIC_KINDS = frozenset({EntryKind.SHORTAGE_AUTOMATIC, EntryKind.EXPENSE_AUTOMATIC})

KIND_LABELS: Dict[EntryKind, str] = {
    EntryKind.DAILY_PAY: "Daily pay",
    EntryKind.BONUS_MANUAL: "Bonus",
    EntryKind.BONUS_GOAL: "Goal bonus",
    EntryKind.ADVANCE_MANUAL: "Cash advance",
    EntryKind.ADJUSTMENT_MANUAL: "Adjustment",
    EntryKind.SHORTAGE_AUTOMATIC: "Collection shortage",
    EntryKind.SHORTAGE_MANUAL: "Shortage",
    EntryKind.EXPENSE_AUTOMATIC: "Incidental expense",
    EntryKind.LATE_PENALTY: "Late penalty",
}


class Contribution(BaseModel):
    kind: EntryKind
    pay_amount_cents: int = 0
    bonus_amount_cents: int = 0
    advance_amount_cents: int = 0
    shortage_amount_cents: int = 0
    expense_amount_cents: int = 0

    model_config = ConfigDict(frozen=True)

    @property
    def payable_cents(self) -> int:
        return (
            self.pay_amount_cents
            + self.bonus_amount_cents
            - self.shortage_amount_cents
            - self.advance_amount_cents
        )


def resolve_kind(entry: LedgerEntry) -> EntryKind:
    """Legacy entries have no kind; they were always daily pay records."""
    return entry.kind if entry.kind is not None else EntryKind.DAILY_PAY


def classify(entry: LedgerEntry) -> Contribution:
    return Contribution(
        kind=resolve_kind(entry),
        pay_amount_cents=entry.pay_amount_cents or 0,
        bonus_amount_cents=entry.bonus_amount_cents or 0,
        advance_amount_cents=entry.advance_amount_cents or 0,
        shortage_amount_cents=entry.shortage_amount_cents or 0,
        expense_amount_cents=entry.expense_amount_cents or 0,
    )


def contribution(entry: LedgerEntry) -> int:
    """Signed amount the entry adds to what the collaborator is owed."""
    return classify(entry).payable_cents


def is_automatic(entry: LedgerEntry) -> bool:
    """True for entries produced by collection reconciliation."""
    return (
        resolve_kind(entry) in AUTOMATIC_KINDS
        or entry.origin == EntryOrigin.AUTOMATIC_FROM_COLLECTION
    )


def describe_kind(entry: LedgerEntry) -> str:
    kind = resolve_kind(entry)
    if kind == EntryKind.DAILY_PAY:
        pay = entry.pay_amount_cents
        if pay == 0 and entry.bonus_amount_cents > 0:
            return "Bonus"
        if pay == 0 and entry.advance_amount_cents > 0:
            return "Cash advance"
        if pay > 0 and entry.bonus_amount_cents > 0:
            return "Daily pay + bonus"
    return KIND_LABELS[kind]
