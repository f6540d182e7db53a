"""
PaymentReconciler - pays a selection of ledger entries, and undoes payments.

Per entry: pending --create--> paid --undo--> pending

Both operations are all-or-nothing. With MONGODB_TRANSACTIONS enabled they
run inside a MongoDB transaction; otherwise every state change is a
compare-and-swap update and a failure part way through is compensated by
reverting what was already changed before the error is raised.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone, tzinfo
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from staffpay.core.config import settings
from staffpay.core.errors import (
    ConcurrentModificationError,
    InvalidSelectionError,
    NonPositiveAmountError,
    NotFoundError,
)
from staffpay.models.base import parse_object_id
from staffpay.models.entry import LedgerEntry, PaymentState
from staffpay.models.payment import DayPaid, Payment, PaymentMethod, PaymentStatus
from staffpay.repositories.entry_repo import EntryRepository
from staffpay.repositories.payment_repo import PaymentRepository
from staffpay.schemas.payment import PaymentVerification
from staffpay.services.ledger_aggregator import LedgerAggregator
from staffpay.services.selection_set import SelectionSet

logger = logging.getLogger(__name__)


class PaymentReconciler:

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        tz: tzinfo | None = None,
        use_transactions: Optional[bool] = None
    ):
        self.db = db
        self.entries = EntryRepository(db)
        self.payments = PaymentRepository(db)
        self.aggregator = LedgerAggregator(tz)
        if use_transactions is None:
            use_transactions = settings.MONGODB_TRANSACTIONS
        self.use_transactions = use_transactions

    @asynccontextmanager
    async def _transaction(self):
        """Yield a session inside a transaction, or None when transactions are off.

        Write conflicts abort the transaction and surface as
        ConcurrentModificationError.
        """
        if not self.use_transactions:
            yield None
            return
        async with await self.db.client.start_session() as session:
            try:
                async with session.start_transaction():
                    yield session
            except PyMongoError as exc:
                if exc.has_error_label("TransientTransactionError"):
                    logger.warning("Transaction aborted by a conflicting write: %s", exc)
                    raise ConcurrentModificationError(
                        "Another reconciliation changed the same records; retry"
                    ) from exc
                raise

    async def create(
        self,
        collaborator_id: str,
        entry_ids: List[str],
        method: PaymentMethod = PaymentMethod.CASH,
        notes: str = "",
        payment_date: Optional[datetime] = None,
        state: PaymentStatus = PaymentStatus.PAID,
        created_by: Optional[str] = None
    ) -> Payment:
        """
        Create a payment for the selected entries and mark them paid.

        Algorithm:
        1. Validate the selection (non-empty, existing, own, pending)
        2. Total must be strictly positive
        3. Build the per-day breakdown
        4. Insert the payment, then flip the entries with compare-and-swap

        Raises InvalidSelectionError, NonPositiveAmountError or
        ConcurrentModificationError; nothing is left changed on failure.
        """
        oids = self._parse_selection(entry_ids)

        async with self._transaction() as session:
            selected = await self._load_selection(collaborator_id, oids, session)

            total = self.aggregator.aggregate_total(selected)
            if total.payable_cents <= 0:
                raise NonPositiveAmountError(
                    f"Selected entries total {total.payable_cents} cents; a payment must be positive"
                )

            payment = Payment(
                collaborator_id=collaborator_id,
                payment_date=payment_date or datetime.now(timezone.utc),
                method=method,
                notes=notes,
                state=state,
                entry_ids=oids,
                days_paid=self.build_days_paid(selected),
                total_amount_cents=total.payable_cents,
                created_by=created_by
            )
            await self.payments.insert_payment(payment, session=session)

            try:
                flipped = await self.entries.mark_paid(oids, collaborator_id, payment.id, session=session)
                if flipped != len(oids):
                    raise ConcurrentModificationError(
                        f"Only {flipped} of {len(oids)} entries were still pending"
                    )
            except Exception:
                if session is None:
                    await self._rollback_create(payment.id)
                raise

        logger.info(
            "Payment %s created for %s: %d entries, %d cents",
            payment.id, collaborator_id, len(oids), payment.total_amount_cents
        )
        return payment

    async def undo(self, payment_id: str) -> List[str]:
        """
        Delete a payment and return its entries to pending.

        Returns the reverted entry ids. A second call for the same payment
        raises NotFoundError.
        """
        oid = parse_object_id(payment_id)
        if oid is None:
            raise NotFoundError(f"Payment {payment_id} not found")

        async with self._transaction() as session:
            payment = await self.payments.claim_for_undo(oid, session=session)
            if payment is None:
                if await self.payments.get_payment(oid, session=session) is None:
                    raise NotFoundError(f"Payment {payment_id} not found")
                raise ConcurrentModificationError(f"Payment {payment_id} is already being undone")

            try:
                reverted = await self.entries.revert_to_pending(oid, payment.entry_ids, session=session)
                if reverted != len(payment.entry_ids):
                    logger.warning(
                        "Payment %s lists %d entries but held %d",
                        oid, len(payment.entry_ids), reverted
                    )
                await self.payments.delete_payment(oid, session=session)
            except Exception:
                if session is None:
                    await self._rollback_undo(payment)
                raise

        logger.info("Payment %s undone: %d entries back to pending", oid, len(payment.entry_ids))
        return [str(entry_id) for entry_id in payment.entry_ids]

    async def get(self, payment_id: str) -> Payment:
        oid = parse_object_id(payment_id)
        payment = await self.payments.get_payment(oid) if oid is not None else None
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    async def list_for_collaborator(self, collaborator_id: Optional[str] = None) -> List[Payment]:
        return await self.payments.list_payments(collaborator_id)

    async def verify(self, payment_id: str) -> PaymentVerification:
        """Recompute a payment from its entries and report any drift."""
        payment = await self.get(payment_id)
        entries = await self.entries.get_entries_by_ids(payment.entry_ids)
        issues: List[str] = []

        if payment.is_reverting:
            issues.append("payment is held by an unfinished undo")
        found = {entry.id for entry in entries}
        for entry_id in payment.entry_ids:
            if entry_id not in found:
                issues.append(f"entry {entry_id} is missing")
        if len(set(payment.entry_ids)) != len(payment.entry_ids):
            issues.append("entry_ids contains duplicates")
        for entry in entries:
            if entry.payment_state != PaymentState.PAID or entry.payment_ref != payment.id:
                issues.append(f"entry {entry.id} is not held by this payment")

        recomputed = self.aggregator.aggregate_total(entries).payable_cents
        days_total = sum(day.amount_cents for day in payment.days_paid)
        if recomputed != payment.total_amount_cents:
            issues.append(
                f"stored total {payment.total_amount_cents} != recomputed {recomputed}"
            )
        if days_total != payment.total_amount_cents:
            issues.append(
                f"days_paid sum {days_total} != stored total {payment.total_amount_cents}"
            )

        return PaymentVerification(
            payment_id=str(payment.id),
            stored_total_cents=payment.total_amount_cents,
            recomputed_total_cents=recomputed,
            days_total_cents=days_total,
            consistent=not issues,
            issues=issues
        )

    async def preview(self, collaborator_id: str, days=(), select_all: bool = False) -> SelectionSet:
        """Selection over the collaborator's pending entries, with the given days toggled."""
        entries = await self.entries.list_for_collaborators([collaborator_id])
        selection = SelectionSet(entries, self.aggregator.tz)
        if select_all:
            selection.select_all()
        for day in days:
            selection.toggle_day(day)
        return selection

    def build_days_paid(self, entries: List[LedgerEntry]) -> List[DayPaid]:
        return [
            DayPaid(
                day=day.isoformat(),
                entry_ids=[ObjectId(entry_id) for entry_id in total.entry_ids],
                pay_amount_cents=total.pay_amount_cents,
                bonus_amount_cents=total.bonus_amount_cents,
                advance_amount_cents=total.advance_amount_cents,
                shortage_amount_cents=total.shortage_amount_cents,
                expense_amount_cents=total.expense_amount_cents,
                amount_cents=total.payable_cents
            )
            for day, total in self.aggregator.aggregate_by_day(entries).items()
        ]

    # ===== PRIVATE HELPERS =====

    def _parse_selection(self, entry_ids: List[str]) -> List[ObjectId]:
        if not entry_ids:
            raise InvalidSelectionError("Select at least one entry to pay")

        oids = []
        for entry_id in entry_ids:
            oid = parse_object_id(entry_id)
            if oid is None:
                raise InvalidSelectionError(f"Invalid entry id: {entry_id}")
            oids.append(oid)

        if len(set(oids)) != len(oids):
            raise InvalidSelectionError("Selection contains duplicate entries")
        return oids

    async def _load_selection(
        self, collaborator_id: str, oids: List[ObjectId], session
    ) -> List[LedgerEntry]:
        entries = {
            entry.id: entry
            for entry in await self.entries.get_entries_by_ids(oids, session=session)
        }

        missing = [str(oid) for oid in oids if oid not in entries]
        if missing:
            raise InvalidSelectionError(f"Entries not found: {', '.join(missing)}")

        foreign = [str(e.id) for e in entries.values() if e.collaborator_id != collaborator_id]
        if foreign:
            raise InvalidSelectionError(
                f"Entries do not belong to {collaborator_id}: {', '.join(foreign)}"
            )

        paid = [
            str(e.id) for e in entries.values()
            if e.payment_state != PaymentState.PENDING or e.payment_ref is not None
        ]
        if paid:
            raise InvalidSelectionError(f"Entries already paid: {', '.join(paid)}")

        return [entries[oid] for oid in oids]

    async def _rollback_create(self, payment_id: ObjectId) -> None:
        try:
            reverted = await self.entries.revert_to_pending(payment_id)
            await self.payments.delete_payment(payment_id)
        except Exception:
            logger.exception("Rollback of payment %s failed", payment_id)
            raise
        logger.warning("Payment %s rolled back, %d entries reverted", payment_id, reverted)

    async def _rollback_undo(self, payment: Payment) -> None:
        try:
            restored = await self.entries.mark_paid(
                payment.entry_ids, payment.collaborator_id, payment.id
            )
            if restored == len(payment.entry_ids):
                await self.payments.release_claim(payment.id)
        except Exception:
            logger.exception("Rollback of undo for payment %s failed", payment.id)
            raise
        if restored != len(payment.entry_ids):
            # The claim stays held so verify reports the payment and undo refuses it
            logger.error(
                "Undo of payment %s rolled back but only %d of %d entries were restored",
                payment.id, restored, len(payment.entry_ids)
            )
            raise ConcurrentModificationError(
                f"Entries of payment {payment.id} were taken by another payment during undo"
            )
        logger.warning("Undo of payment %s rolled back", payment.id)
