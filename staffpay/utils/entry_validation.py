"""Ledger entry validation, applied when entries are written."""
from typing import Dict

from staffpay.core.errors import LedgerValidationError
from staffpay.models.entry import AMOUNT_FIELDS, EntryKind, EntryOrigin
from staffpay.utils.entry_classifier import AUTOMATIC_KINDS, KIND_AMOUNT_FIELDS


def validate_amounts(kind: EntryKind, amounts: Dict[str, int]) -> None:
    """
    Validate entry amounts for a kind.

    Rules:
    - no amount may be negative
    - a kind may only carry the amount fields it is classified with
    - at least one amount must be non-zero
    """
    try:
        kind = EntryKind(kind)
    except ValueError:
        raise LedgerValidationError(f"Unknown entry kind: {kind}")

    allowed = KIND_AMOUNT_FIELDS[kind]
    for field in AMOUNT_FIELDS:
        value = amounts.get(field) or 0
        if value < 0:
            raise LedgerValidationError(f"{field} cannot be negative: {value}")
        if value and field not in allowed:
            raise LedgerValidationError(
                f"Entries of kind '{kind.value}' cannot carry {field}"
            )

    if not any(amounts.get(field) for field in AMOUNT_FIELDS):
        raise LedgerValidationError("Entry must carry a non-zero amount")


def default_origin(kind: EntryKind) -> EntryOrigin:
    """Collection shortages and expenses come from the collections process."""
    if kind in AUTOMATIC_KINDS:
        return EntryOrigin.AUTOMATIC_FROM_COLLECTION
    return EntryOrigin.MANUAL
