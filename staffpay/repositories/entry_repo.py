"""
EntryRepository - ledger entries collection.

Payment state is only changed through mark_paid / revert_to_pending, and
both are compare-and-swap updates: they only touch entries still in the
state the caller expects, and report how many actually changed.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from staffpay.core.config import settings
from staffpay.core.errors import EntryLockedError, NotFoundError
from staffpay.models.base import parse_object_id, to_storage
from staffpay.models.entry import AMOUNT_FIELDS, EntryKind, LedgerEntry, PaymentState
from staffpay.schemas.entry import EntryCreate, EntryFilters, EntryUpdate
from staffpay.utils.date_bucketing import day_bounds
from staffpay.utils.entry_classifier import resolve_kind
from staffpay.utils.entry_validation import default_origin, validate_amounts

# Documents written before these fields existed are live and pending
NOT_DELETED = {"$ne": True}
PENDING_STATES = {"$in": [PaymentState.PENDING.value, None]}


class EntryRepository:
    """Ledger entry database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["ledger_entries"]

    async def create_entry(self, entry_data: EntryCreate, created_by: str | None = None) -> LedgerEntry:
        """Validate and insert a new pending entry."""
        amounts = entry_data.model_dump(include=set(AMOUNT_FIELDS))
        validate_amounts(entry_data.kind, amounts)

        entry = LedgerEntry(
            collaborator_id=entry_data.collaborator_id,
            date=entry_data.date,
            kind=entry_data.kind,
            origin=entry_data.origin or default_origin(entry_data.kind),
            description=entry_data.description,
            created_by=created_by,
            **amounts
        )
        await self.collection.insert_one(entry.to_document())
        return entry

    async def get_entry(self, entry_id: str) -> Optional[LedgerEntry]:
        oid = parse_object_id(entry_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid, "is_deleted": NOT_DELETED})
        return LedgerEntry(**doc) if doc else None

    async def get_entries_by_ids(self, entry_ids: Iterable[ObjectId], session=None) -> List[LedgerEntry]:
        docs = await self.collection.find(
            {"_id": {"$in": list(entry_ids)}, "is_deleted": NOT_DELETED},
            session=session
        ).to_list(None)
        return [LedgerEntry(**doc) for doc in docs]

    async def list_entries(self, filters: EntryFilters) -> List[LedgerEntry]:
        """List entries matching the filters, ordered by management date."""
        query = self._build_query(filters)
        direction = -1 if filters.newest_first else 1
        limit = min(filters.limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

        docs = await self.collection.find(
            query,
            sort=[("date", direction), ("_id", direction)],
            skip=filters.skip,
            limit=limit
        ).to_list(None)
        return [LedgerEntry(**doc) for doc in docs]

    async def list_for_collaborators(self, collaborator_ids: List[str]) -> List[LedgerEntry]:
        docs = await self.collection.find(
            {"collaborator_id": {"$in": collaborator_ids}, "is_deleted": NOT_DELETED},
            sort=[("date", 1), ("_id", 1)]
        ).to_list(None)
        return [LedgerEntry(**doc) for doc in docs]

    async def update_entry(self, entry_id: str, update_data: EntryUpdate) -> LedgerEntry:
        """
        Update a pending entry.

        Raises NotFoundError if missing, EntryLockedError if it is paid
        (or gets paid while the update is in flight).
        """
        entry = await self.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Ledger entry {entry_id} not found")
        if entry.payment_state != PaymentState.PENDING:
            raise EntryLockedError(f"Ledger entry {entry_id} is paid and cannot be edited")

        updates = update_data.model_dump(exclude_unset=True, exclude_none=True)
        if not updates:
            return entry

        kind = updates.get("kind") or resolve_kind(entry)
        merged = {field: updates.get(field, getattr(entry, field)) for field in AMOUNT_FIELDS}
        validate_amounts(kind, merged)

        updates.update(merged)
        updates["kind"] = kind.value
        if "date" in updates:
            updates["date"] = to_storage(updates["date"])
        updates["updated_at"] = to_storage(datetime.now(timezone.utc))

        result = await self.collection.find_one_and_update(
            {
                "_id": entry.id,
                "payment_state": PENDING_STATES,
                "payment_ref": None,
                "is_deleted": NOT_DELETED
            },
            {"$set": updates},
            return_document=True
        )
        if result is None:
            raise EntryLockedError(f"Ledger entry {entry_id} was paid while being edited")
        return LedgerEntry(**result)

    async def delete_entry(self, entry_id: str) -> None:
        """Soft-delete a pending entry."""
        oid = parse_object_id(entry_id)
        if oid is None:
            raise NotFoundError(f"Ledger entry {entry_id} not found")

        result = await self.collection.update_one(
            {
                "_id": oid,
                "payment_state": PENDING_STATES,
                "payment_ref": None,
                "is_deleted": NOT_DELETED
            },
            {"$set": {
                "is_deleted": True,
                "updated_at": to_storage(datetime.now(timezone.utc))
            }}
        )
        if result.modified_count:
            return

        if await self.get_entry(entry_id) is None:
            raise NotFoundError(f"Ledger entry {entry_id} not found")
        raise EntryLockedError(f"Ledger entry {entry_id} is paid and cannot be deleted")

    async def mark_paid(
        self,
        entry_ids: List[ObjectId],
        collaborator_id: str,
        payment_id: ObjectId,
        session=None
    ) -> int:
        """Flip pending entries to paid. Returns how many flipped."""
        result = await self.collection.update_many(
            {
                "_id": {"$in": entry_ids},
                "collaborator_id": collaborator_id,
                "payment_state": PENDING_STATES,
                "payment_ref": None,
                "is_deleted": NOT_DELETED
            },
            {"$set": {
                "payment_state": PaymentState.PAID.value,
                "payment_ref": payment_id,
                "updated_at": to_storage(datetime.now(timezone.utc))
            }},
            session=session
        )
        return result.modified_count

    async def revert_to_pending(
        self,
        payment_id: ObjectId,
        entry_ids: Optional[List[ObjectId]] = None,
        session=None
    ) -> int:
        """Return entries held by a payment to pending. Returns how many reverted."""
        query = {"payment_ref": payment_id}
        if entry_ids is not None:
            query["_id"] = {"$in": entry_ids}

        result = await self.collection.update_many(
            query,
            {"$set": {
                "payment_state": PaymentState.PENDING.value,
                "payment_ref": None,
                "updated_at": to_storage(datetime.now(timezone.utc))
            }},
            session=session
        )
        return result.modified_count

    # ===== PRIVATE HELPERS =====

    def _build_query(self, filters: EntryFilters) -> dict:
        query: dict = {"is_deleted": NOT_DELETED}
        if filters.collaborator_id:
            query["collaborator_id"] = filters.collaborator_id
        if filters.kind == EntryKind.DAILY_PAY:
            # Legacy entries without a kind are daily pay
            query["kind"] = {"$in": [EntryKind.DAILY_PAY.value, None]}
        elif filters.kind:
            query["kind"] = filters.kind.value
        if filters.payment_state == PaymentState.PENDING:
            query["payment_state"] = PENDING_STATES
        elif filters.payment_state:
            query["payment_state"] = filters.payment_state.value
        if filters.origin:
            query["origin"] = filters.origin.value

        start, end = day_bounds(filters.start, filters.end)
        if start or end:
            query["date"] = {}
            if start:
                query["date"]["$gte"] = to_storage(start)
            if end:
                query["date"]["$lt"] = to_storage(end)
        return query

