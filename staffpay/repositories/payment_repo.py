from datetime import datetime, timezone
from typing import Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from staffpay.models.base import to_storage
from staffpay.models.payment import Payment


class PaymentRepository:
    """Payment database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["payments"]

    async def insert_payment(self, payment: Payment, session=None) -> Payment:
        await self.collection.insert_one(payment.to_document(), session=session)
        return payment

    async def get_payment(self, payment_id: ObjectId, session=None) -> Optional[Payment]:
        doc = await self.collection.find_one({"_id": payment_id}, session=session)
        return Payment(**doc) if doc else None

    async def list_payments(self, collaborator_id: Optional[str] = None) -> List[Payment]:
        """List payments, newest payment date first."""
        query = {"collaborator_id": collaborator_id} if collaborator_id else {}
        docs = await self.collection.find(
            query,
            sort=[("payment_date", -1), ("_id", -1)]
        ).to_list(None)
        return [Payment(**doc) for doc in docs]

    async def count_by_collaborator(self, collaborator_ids: List[str]) -> Dict[str, int]:
        """Number of payments per collaborator."""
        result = await self.collection.aggregate([
            {"$match": {"collaborator_id": {"$in": collaborator_ids}}},
            {"$group": {"_id": "$collaborator_id", "count": {"$sum": 1}}}
        ]).to_list(None)
        return {row["_id"]: row["count"] for row in result}

    async def claim_for_undo(self, payment_id: ObjectId, session=None) -> Optional[Payment]:
        """
        Mark a payment as being undone.

        Returns None if the payment does not exist or another undo holds it.
        """
        doc = await self.collection.find_one_and_update(
            {"_id": payment_id, "is_reverting": {"$ne": True}},
            {"$set": {
                "is_reverting": True,
                "updated_at": to_storage(datetime.now(timezone.utc))
            }},
            return_document=True,
            session=session
        )
        return Payment(**doc) if doc else None

    async def release_claim(self, payment_id: ObjectId) -> None:
        await self.collection.update_one(
            {"_id": payment_id},
            {"$set": {
                "is_reverting": False,
                "updated_at": to_storage(datetime.now(timezone.utc))
            }}
        )

    async def delete_payment(self, payment_id: ObjectId, session=None) -> bool:
        result = await self.collection.delete_one({"_id": payment_id}, session=session)
        return result.deleted_count > 0
