from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase

from payplan.models.purchase import Purchase


class PurchaseRepository:
    """Purchase (service catalogue) database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["purchases"]

    async def create_purchase(self, purchase: Purchase) -> Purchase:
        await self.collection.insert_one(purchase.to_document())
        return purchase

    async def get_purchase(self, purchase_id: str | ObjectId) -> Optional[Purchase]:
        """Get a purchase by id."""
        try:
            doc = await self.collection.find_one({"_id": ObjectId(purchase_id)})
            if doc:
                return Purchase(**doc)
        except (InvalidId, TypeError):
            return None
        return None

    async def delete_purchase(self, purchase_id: str | ObjectId) -> bool:
        try:
            result = await self.collection.delete_one({"_id": ObjectId(purchase_id)})
            return result.deleted_count > 0
        except (InvalidId, TypeError):
            return False
