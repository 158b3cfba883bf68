import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from payplan.core.exceptions import NotFound, PermissionDenied
from payplan.models.account import Account
from payplan.models.purchase import Purchase
from payplan.repositories.ledger_repo import LedgerRepository
from payplan.repositories.purchase_repo import PurchaseRepository

logger = logging.getLogger(__name__)


class PurchaseService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.purchases = PurchaseRepository(db)
        self.ledgers = LedgerRepository(db)

    async def create_purchase(self, purchase: Purchase, admin: Account) -> Purchase:
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")
        return await self.purchases.create_purchase(purchase)

    async def get_purchase(self, purchase_id: str) -> Purchase:
        purchase = await self.purchases.get_purchase(purchase_id)
        if purchase is None:
            raise NotFound("Purchase not found")
        return purchase

    async def delete_purchase(self, purchase_id: str, admin: Account) -> int:
        """Delete a purchase and its ledgers. Returns ledgers removed."""
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")

        purchase = await self.get_purchase(purchase_id)
        removed = await self.ledgers.delete_for_purchase(purchase.id)
        await self.purchases.delete_purchase(purchase.id)
        logger.info("Purchase %s deleted with %d ledger(s)", purchase.id, removed)
        return removed
