"""
Ledger error kinds.

Every mutation failure is raised as one of these so callers can tell a bad
selection from a race or a missing record. The API renders them as
{"detail": <message>, "error": <kind>} with the status code of the class.
"""


class LedgerError(Exception):
    """Base class for ledger and reconciliation errors."""
    kind = "ledger_error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidSelectionError(LedgerError):
    """Empty selection, foreign entries, or entries that are already paid."""
    kind = "invalid_selection"
    status_code = 400


class NonPositiveAmountError(LedgerError):
    """The selected entries add up to zero or less."""
    kind = "non_positive_amount"
    status_code = 400


class NotFoundError(LedgerError):
    kind = "not_found"
    status_code = 404


class ConcurrentModificationError(LedgerError):
    """Another reconciliation changed the same records first."""
    kind = "concurrent_modification"
    status_code = 409


class LedgerValidationError(LedgerError):
    """Malformed entry data rejected at write time."""
    kind = "validation_error"
    status_code = 422


class EntryLockedError(LedgerError):
    """Paid entries are frozen until their payment is undone."""
    kind = "entry_locked"
    status_code = 409
