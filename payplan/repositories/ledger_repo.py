"""
LedgerRepository - persistence for payment ledgers.

Each ledger is one document embedding its obligations, so every workflow step
is a single read-modify-write. Writes are versioned: save_ledger() only
succeeds if the stored version still matches the one that was read.
"""

import re
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from payplan.core.exceptions import ConcurrentModification, DuplicateReference, NotFound
from payplan.models.ledger import Ledger, ObligationStatus, PaymentMode, PaymentStatus


class LedgerRepository:
    """Repository for payment ledgers."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["ledgers"]

    async def insert_ledger(self, ledger: Ledger) -> Ledger:
        """
        Persist a new ledger.

        The unique index on transaction_ref backs up the caller's duplicate
        check when two payers race with the same reference.
        """
        try:
            await self.collection.insert_one(ledger.to_document())
        except DuplicateKeyError:
            raise DuplicateReference(f"Transaction reference already used: {ledger.transaction_ref}")
        return ledger

    async def get_ledger(self, ledger_id: str | ObjectId) -> Optional[Ledger]:
        """Get a ledger by id, None if missing or the id is malformed."""
        try:
            doc = await self.collection.find_one({"_id": ObjectId(ledger_id)})
        except (InvalidId, TypeError):
            return None
        if doc:
            return Ledger(**doc)
        return None

    async def reference_in_use(self, transaction_ref: str) -> bool:
        """True if any ledger or obligation already carries this reference."""
        doc = await self.collection.find_one(
            {
                "$or": [
                    {"transaction_ref": transaction_ref},
                    {"obligations.transaction_ref": transaction_ref}
                ]
            },
            {"_id": 1}
        )
        return doc is not None

    async def save_ledger(self, ledger: Ledger) -> Ledger:
        """
        Write back a mutated ledger with an optimistic version check.

        Raises ConcurrentModification if another writer got there first and
        NotFound if the ledger was deleted in the meantime.
        """
        updates = ledger.to_document()
        updates.pop("_id")
        updates["version"] = ledger.version + 1
        updates["updated_at"] = datetime.now(timezone.utc)

        result = await self.collection.find_one_and_update(
            {
                "_id": ledger.id,
                "version": ledger.version  # Optimistic lock
            },
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result:
            return Ledger(**result)

        if await self.collection.find_one({"_id": ledger.id}, {"_id": 1}) is None:
            raise NotFound("Ledger not found")
        raise ConcurrentModification(
            f"Ledger {ledger.id} was modified concurrently (version {ledger.version} is stale)"
        )

    async def list_for_account(self, account_id: ObjectId) -> List[Ledger]:
        """List an account's ledgers, newest first."""
        cursor = self.collection.find({"account_id": account_id}).sort("created_at", -1)
        docs = await cursor.to_list(None)
        return [Ledger(**doc) for doc in docs]

    async def list_ledgers(
        self,
        payment_status: Optional[str] = None,
        payment_mode: Optional[str] = None,
        obligation_status: Optional[str] = None,
        search: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None
    ) -> List[Ledger]:
        """
        Admin listing across all accounts, newest first.

        ``search`` matches ledger and installment transaction references,
        case-insensitively. ``obligation_status="submitted"`` finds ledgers
        with an installment waiting for review.
        """
        query: dict = {}
        if payment_status:
            query["payment_status"] = payment_status
        if payment_mode:
            query["payment_mode"] = payment_mode
        if obligation_status:
            query["obligations.status"] = obligation_status
        if search:
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [
                {"transaction_ref": pattern},
                {"obligations.transaction_ref": pattern}
            ]
        if created_from or created_to:
            query["created_at"] = {}
            if created_from:
                query["created_at"]["$gte"] = created_from
            if created_to:
                query["created_at"]["$lte"] = created_to

        cursor = self.collection.find(query).sort("created_at", -1)
        docs = await cursor.to_list(None)
        return [Ledger(**doc) for doc in docs]

    async def stats(self) -> dict:
        """Ledger counts, collected revenue and installment totals by payment status."""
        total = await self.collection.count_documents({})
        awaiting_review = await self.collection.count_documents({
            "$or": [
                {"payment_mode": PaymentMode.FULL.value, "payment_status": PaymentStatus.PENDING.value},
                {"obligations.status": ObligationStatus.SUBMITTED.value}
            ]
        })

        revenue = await self.collection.aggregate([
            {"$group": {"_id": None, "total": {"$sum": "$amount_paid_cents"}}}
        ]).to_list(None)

        installments = await self.collection.aggregate([
            {"$match": {"payment_mode": PaymentMode.INSTALLMENT.value}},
            {"$group": {
                "_id": "$payment_status",
                "count": {"$sum": 1},
                "total_cents": {"$sum": "$total_cents"},
                "paid_cents": {"$sum": "$amount_paid_cents"}
            }},
            {"$sort": {"_id": 1}}
        ]).to_list(None)

        return {
            "total_ledgers": total,
            "awaiting_review": awaiting_review,
            "revenue_cents": revenue[0]["total"] if revenue else 0,
            "installments_by_status": [
                {
                    "payment_status": row["_id"],
                    "count": row["count"],
                    "total_cents": row["total_cents"],
                    "paid_cents": row["paid_cents"]
                }
                for row in installments
            ]
        }

    async def find_sweep_candidates(self) -> List[Ledger]:
        """
        Installment ledgers not yet flagged that still have open obligations.

        Due dates are compared by the caller so the clock stays injectable.
        """
        cursor = self.collection.find({
            "payment_mode": PaymentMode.INSTALLMENT.value,
            "marked_suspicious": False,
            "obligations.status": {
                "$in": [ObligationStatus.PENDING.value, ObligationStatus.SUBMITTED.value]
            }
        }).sort("created_at", 1)
        docs = await cursor.to_list(None)
        return [Ledger(**doc) for doc in docs]

    async def delete_for_account(self, account_id: ObjectId) -> int:
        result = await self.collection.delete_many({"account_id": account_id})
        return result.deleted_count

    async def delete_for_purchase(self, purchase_id: ObjectId) -> int:
        result = await self.collection.delete_many({"purchase_id": purchase_id})
        return result.deleted_count
