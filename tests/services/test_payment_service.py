"""Tests for PaymentReconciler."""
import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from staffpay.core.errors import (
    ConcurrentModificationError,
    InvalidSelectionError,
    NonPositiveAmountError,
    NotFoundError,
)
from staffpay.models.entry import EntryKind, PaymentState
from staffpay.models.payment import Payment, PaymentMethod
from staffpay.repositories.entry_repo import EntryRepository
from staffpay.services.payment_service import PaymentReconciler


@pytest.fixture
def reconciler(test_db):
    return PaymentReconciler(test_db, tz=ZoneInfo("America/Lima"), use_transactions=False)


async def _states(test_db, entries):
    repo = EntryRepository(test_db)
    loaded = await repo.get_entries_by_ids([e.id for e in entries])
    by_id = {e.id: e for e in loaded}
    return [(by_id[e.id].payment_state, by_id[e.id].payment_ref) for e in entries]


class TestCreatePayment:

    @pytest.mark.asyncio
    async def test_pays_selected_entries(self, test_db, reconciler, seed_entry):
        pay = await seed_entry(pay_amount_cents=10000)
        bonus = await seed_entry(kind=EntryKind.BONUS_MANUAL, bonus_amount_cents=2000)

        payment = await reconciler.create(
            "col-1", [str(pay.id), str(bonus.id)],
            method=PaymentMethod.TRANSFER, created_by="operator-1"
        )

        assert payment.total_amount_cents == 12000
        assert payment.entry_ids == [pay.id, bonus.id]
        assert len(payment.days_paid) == 1
        assert payment.days_paid[0].day == "2024-03-04"
        assert payment.days_paid[0].amount_cents == 12000
        assert await _states(test_db, [pay, bonus]) == [
            (PaymentState.PAID, payment.id),
            (PaymentState.PAID, payment.id),
        ]

        stored = await reconciler.get(str(payment.id))
        assert stored.method == PaymentMethod.TRANSFER
        assert stored.created_by == "operator-1"

    @pytest.mark.asyncio
    async def test_days_paid_split_by_local_day(self, reconciler, seed_entry):
        first = await seed_entry(day="2024-03-04", hour=22, pay_amount_cents=10000)
        second = await seed_entry(day="2024-03-05", hour=1, pay_amount_cents=8000)
        shortage = await seed_entry(day="2024-03-05", kind=EntryKind.SHORTAGE_AUTOMATIC, shortage_amount_cents=500)

        payment = await reconciler.create("col-1", [str(first.id), str(second.id), str(shortage.id)])

        assert [d.day for d in payment.days_paid] == ["2024-03-04", "2024-03-05"]
        assert [d.amount_cents for d in payment.days_paid] == [10000, 7500]
        assert sum(d.amount_cents for d in payment.days_paid) == payment.total_amount_cents

    @pytest.mark.asyncio
    async def test_already_paid_entry_rejected(self, test_db, reconciler, seed_entry):
        paid = await seed_entry(pay_amount_cents=10000)
        fresh = await seed_entry(day="2024-03-05", pay_amount_cents=10000)
        first = await reconciler.create("col-1", [str(paid.id)])

        with pytest.raises(InvalidSelectionError):
            await reconciler.create("col-1", [str(paid.id), str(fresh.id)])

        assert await _states(test_db, [paid, fresh]) == [
            (PaymentState.PAID, first.id),
            (PaymentState.PENDING, None),
        ]
        assert await test_db["payments"].count_documents({}) == 1

    @pytest.mark.asyncio
    async def test_zero_total_rejected(self, test_db, reconciler, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000, advance_amount_cents=10000)

        with pytest.raises(NonPositiveAmountError):
            await reconciler.create("col-1", [str(entry.id)])

        assert await _states(test_db, [entry]) == [(PaymentState.PENDING, None)]
        assert await test_db["payments"].count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_negative_total_rejected(self, reconciler, seed_entry):
        entry = await seed_entry(kind=EntryKind.ADVANCE_MANUAL, advance_amount_cents=5000)
        with pytest.raises(NonPositiveAmountError):
            await reconciler.create("col-1", [str(entry.id)])

    @pytest.mark.asyncio
    async def test_empty_selection_rejected(self, reconciler):
        with pytest.raises(InvalidSelectionError):
            await reconciler.create("col-1", [])

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_ids_rejected(self, reconciler):
        with pytest.raises(InvalidSelectionError):
            await reconciler.create("col-1", ["not-an-id"])
        with pytest.raises(InvalidSelectionError):
            await reconciler.create("col-1", [str(ObjectId())])

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self, reconciler, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000)
        with pytest.raises(InvalidSelectionError):
            await reconciler.create("col-1", [str(entry.id), str(entry.id)])

    @pytest.mark.asyncio
    async def test_foreign_entry_rejected(self, test_db, reconciler, seed_entry):
        own = await seed_entry(pay_amount_cents=10000)
        foreign = await seed_entry(collaborator_id="col-2", pay_amount_cents=10000)

        with pytest.raises(InvalidSelectionError):
            await reconciler.create("col-1", [str(own.id), str(foreign.id)])
        assert await _states(test_db, [own, foreign]) == [
            (PaymentState.PENDING, None),
            (PaymentState.PENDING, None),
        ]

    @pytest.mark.asyncio
    async def test_consumed_entries_cannot_be_reselected_until_undo(self, reconciler, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000)
        payment = await reconciler.create("col-1", [str(entry.id)])

        with pytest.raises(InvalidSelectionError):
            await reconciler.create("col-1", [str(entry.id)])

        await reconciler.undo(str(payment.id))
        again = await reconciler.create("col-1", [str(entry.id)])
        assert again.total_amount_cents == 10000

    @pytest.mark.asyncio
    async def test_race_on_flip_rolls_back(self, test_db, reconciler, seed_entry):
        first = await seed_entry(pay_amount_cents=10000)
        second = await seed_entry(day="2024-03-05", pay_amount_cents=10000)
        rival = ObjectId()
        real_mark_paid = reconciler.entries.mark_paid

        async def rival_pays_first(entry_ids, collaborator_id, payment_id, session=None):
            # Another payment takes the second entry between validation and flip
            await real_mark_paid([second.id], collaborator_id, rival)
            return await real_mark_paid(entry_ids, collaborator_id, payment_id, session=session)

        with patch.object(reconciler.entries, "mark_paid", side_effect=rival_pays_first):
            with pytest.raises(ConcurrentModificationError):
                await reconciler.create("col-1", [str(first.id), str(second.id)])

        assert await _states(test_db, [first, second]) == [
            (PaymentState.PENDING, None),
            (PaymentState.PAID, rival),
        ]
        assert await test_db["payments"].count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_failure_after_flip_rolls_back(self, test_db, reconciler, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000)
        real_mark_paid = reconciler.entries.mark_paid

        async def flip_then_fail(*args, **kwargs):
            await real_mark_paid(*args, **kwargs)
            raise RuntimeError("connection reset")

        with patch.object(reconciler.entries, "mark_paid", side_effect=flip_then_fail):
            with pytest.raises(RuntimeError):
                await reconciler.create("col-1", [str(entry.id)])

        assert await _states(test_db, [entry]) == [(PaymentState.PENDING, None)]
        assert await test_db["payments"].count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_concurrent_creates_only_one_wins(self, test_db, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000)
        a = PaymentReconciler(test_db, use_transactions=False)
        b = PaymentReconciler(test_db, use_transactions=False)

        results = await asyncio.gather(
            a.create("col-1", [str(entry.id)]),
            b.create("col-1", [str(entry.id)]),
            return_exceptions=True
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], (InvalidSelectionError, ConcurrentModificationError))
        assert await _states(test_db, [entry]) == [(PaymentState.PAID, winners[0].id)]
        assert await test_db["payments"].count_documents({}) == 1


class TestUndoPayment:

    @pytest.mark.asyncio
    async def test_undo_restores_entries(self, test_db, reconciler, seed_entry):
        entries = [
            await seed_entry(day="2024-03-04", pay_amount_cents=10000),
            await seed_entry(day="2024-03-04", kind=EntryKind.BONUS_MANUAL, bonus_amount_cents=1000),
            await seed_entry(day="2024-03-05", pay_amount_cents=10000),
        ]
        payment = await reconciler.create("col-1", [str(e.id) for e in entries])
        assert len(payment.days_paid) == 2

        reverted = await reconciler.undo(str(payment.id))

        assert reverted == [str(e.id) for e in entries]
        assert await _states(test_db, entries) == [(PaymentState.PENDING, None)] * 3
        assert await test_db["payments"].find_one({"_id": payment.id}) is None

        with pytest.raises(NotFoundError):
            await reconciler.undo(str(payment.id))

    @pytest.mark.asyncio
    async def test_undo_unknown_payment(self, reconciler):
        with pytest.raises(NotFoundError):
            await reconciler.undo(str(ObjectId()))
        with pytest.raises(NotFoundError):
            await reconciler.undo("bogus")

    @pytest.mark.asyncio
    async def test_undo_in_progress_conflicts(self, test_db, reconciler, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000)
        payment = await reconciler.create("col-1", [str(entry.id)])
        await test_db["payments"].update_one({"_id": payment.id}, {"$set": {"is_reverting": True}})

        with pytest.raises(ConcurrentModificationError):
            await reconciler.undo(str(payment.id))
        assert await _states(test_db, [entry]) == [(PaymentState.PAID, payment.id)]

    @pytest.mark.asyncio
    async def test_failed_delete_restores_payment(self, test_db, reconciler, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000)
        payment = await reconciler.create("col-1", [str(entry.id)])

        with patch.object(
            reconciler.payments, "delete_payment",
            AsyncMock(side_effect=RuntimeError("write concern error"))
        ):
            with pytest.raises(RuntimeError):
                await reconciler.undo(str(payment.id))

        assert await _states(test_db, [entry]) == [(PaymentState.PAID, payment.id)]
        stored = await test_db["payments"].find_one({"_id": payment.id})
        assert stored is not None
        assert stored["is_reverting"] is False

        assert await reconciler.undo(str(payment.id)) == [str(entry.id)]

    @pytest.mark.asyncio
    async def test_entries_taken_during_failed_undo_keep_claim(self, test_db, reconciler, seed_entry):
        first = await seed_entry(day="2024-03-04", pay_amount_cents=10000)
        second = await seed_entry(day="2024-03-05", pay_amount_cents=10000)
        payment = await reconciler.create("col-1", [str(first.id), str(second.id)])
        rival = ObjectId()

        async def rival_pays_then_fail(payment_id, session=None):
            # Another payment takes a reverted entry before the delete fails
            await reconciler.entries.mark_paid([second.id], "col-1", rival)
            raise RuntimeError("write concern error")

        with patch.object(reconciler.payments, "delete_payment", side_effect=rival_pays_then_fail):
            with pytest.raises(ConcurrentModificationError):
                await reconciler.undo(str(payment.id))

        assert await _states(test_db, [first, second]) == [
            (PaymentState.PAID, payment.id),
            (PaymentState.PAID, rival),
        ]
        stored = await test_db["payments"].find_one({"_id": payment.id})
        assert stored["is_reverting"] is True

        result = await reconciler.verify(str(payment.id))
        assert result.consistent is False
        assert "payment is held by an unfinished undo" in result.issues
        assert f"entry {second.id} is not held by this payment" in result.issues

        with pytest.raises(ConcurrentModificationError):
            await reconciler.undo(str(payment.id))


class TestVerifyAndPreview:

    @pytest.mark.asyncio
    async def test_verify_consistent_payment(self, reconciler, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000)
        payment = await reconciler.create("col-1", [str(entry.id)])

        result = await reconciler.verify(str(payment.id))

        assert result.consistent is True
        assert result.recomputed_total_cents == result.stored_total_cents == 10000
        assert result.issues == []

    @pytest.mark.asyncio
    async def test_verify_detects_drift(self, test_db, reconciler, seed_entry):
        entry = await seed_entry(pay_amount_cents=10000)
        payment = await reconciler.create("col-1", [str(entry.id)])
        await test_db["ledger_entries"].update_one({"_id": entry.id}, {"$set": {"pay_amount_cents": 9000}})

        result = await reconciler.verify(str(payment.id))

        assert result.consistent is False
        assert result.recomputed_total_cents == 9000
        assert len(result.issues) == 1

    @pytest.mark.asyncio
    async def test_preview_selects_days(self, reconciler, seed_entry):
        await seed_entry(day="2024-03-04", pay_amount_cents=10000)
        await seed_entry(day="2024-03-05", pay_amount_cents=8000)
        paid = await seed_entry(day="2024-03-06", pay_amount_cents=5000)
        await reconciler.create("col-1", [str(paid.id)])

        selection = await reconciler.preview("col-1", days=[date(2024, 3, 5)])
        assert selection.available_days == [date(2024, 3, 4), date(2024, 3, 5)]
        assert selection.preview_total().payable_cents == 8000

        everything = await reconciler.preview("col-1", select_all=True)
        assert everything.preview_total().payable_cents == 18000

    @pytest.mark.asyncio
    async def test_list_for_collaborator(self, reconciler, seed_entry):
        first = await seed_entry(day="2024-03-04", pay_amount_cents=100)
        other = await seed_entry(collaborator_id="col-2", pay_amount_cents=100)
        await reconciler.create("col-1", [str(first.id)])
        await reconciler.create("col-2", [str(other.id)])

        payments = await reconciler.list_for_collaborator("col-1")
        assert [p.collaborator_id for p in payments] == ["col-1"]
        assert len(await reconciler.list_for_collaborator()) == 2


@pytest.fixture
def transactional_reconciler():
    """Reconciler over a mocked client whose sessions support transactions."""
    session = MagicMock()
    session.start_transaction.return_value.__aexit__.return_value = False
    session_ctx = MagicMock()
    session_ctx.__aenter__.return_value = session
    session_ctx.__aexit__.return_value = False
    mock_db = MagicMock()
    mock_db.client.start_session = AsyncMock(return_value=session_ctx)
    return PaymentReconciler(mock_db, tz=ZoneInfo("America/Lima"), use_transactions=True), session


class TestTransactions:

    @pytest.mark.asyncio
    async def test_transaction_wraps_session(self, transactional_reconciler):
        """With transactions on, work runs inside a started transaction."""
        reconciler, session = transactional_reconciler

        async with reconciler._transaction() as active:
            assert active is session

        reconciler.db.client.start_session.assert_awaited_once()
        session.start_transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_write_conflict_is_concurrent_modification(self, transactional_reconciler, make_entry):
        reconciler, _ = transactional_reconciler
        entry = make_entry(pay_amount_cents=10000)
        conflict = OperationFailure(
            "WriteConflict", code=112, details={"errorLabels": ["TransientTransactionError"]}
        )

        with patch.object(reconciler.entries, "get_entries_by_ids", AsyncMock(return_value=[entry])), \
                patch.object(reconciler.payments, "insert_payment", AsyncMock()), \
                patch.object(reconciler.entries, "mark_paid", AsyncMock(side_effect=conflict)), \
                patch.object(reconciler, "_rollback_create", AsyncMock()) as rollback:
            with pytest.raises(ConcurrentModificationError) as exc_info:
                await reconciler.create("col-1", [str(entry.id)])

        assert exc_info.value.__cause__ is conflict
        rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_conflict_during_undo(self, transactional_reconciler):
        reconciler, _ = transactional_reconciler
        payment = Payment(collaborator_id="col-1", payment_date=datetime.now(timezone.utc), entry_ids=[ObjectId()])
        conflict = OperationFailure(
            "WriteConflict", code=112, details={"errorLabels": ["TransientTransactionError"]}
        )

        with patch.object(reconciler.payments, "claim_for_undo", AsyncMock(return_value=payment)), \
                patch.object(reconciler.entries, "revert_to_pending", AsyncMock(side_effect=conflict)):
            with pytest.raises(ConcurrentModificationError):
                await reconciler.undo(str(payment.id))

    @pytest.mark.asyncio
    async def test_other_driver_errors_propagate(self, transactional_reconciler, make_entry):
        reconciler, _ = transactional_reconciler
        entry = make_entry(pay_amount_cents=10000)

        with patch.object(reconciler.entries, "get_entries_by_ids", AsyncMock(return_value=[entry])), \
                patch.object(reconciler.payments, "insert_payment", AsyncMock()), \
                patch.object(reconciler.entries, "mark_paid", AsyncMock(side_effect=OperationFailure("not authorized", code=13))):
            with pytest.raises(OperationFailure):
                await reconciler.create("col-1", [str(entry.id)])


@pytest.mark.asyncio
async def test_no_session_without_transactions(test_db):
    reconciler = PaymentReconciler(test_db, use_transactions=False)
    async with reconciler._transaction() as active:
        assert active is None
