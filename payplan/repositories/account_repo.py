from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from payplan.core.exceptions import ConcurrentModification, NotFound
from payplan.models.account import Account, AccountRole, SettingsChange


class AccountRepository:
    """Account database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["accounts"]

    async def create_account(
        self,
        name: str,
        email: str,
        role: AccountRole = AccountRole.USER
    ) -> Account:
        """Create a new account with installments disabled."""
        account = Account(name=name, email=email.lower(), role=role)
        await self.collection.insert_one(account.to_document())
        return account

    async def get_account(self, account_id: str | ObjectId) -> Optional[Account]:
        """Get an account by id."""
        try:
            doc = await self.collection.find_one({"_id": ObjectId(account_id)})
            if doc:
                return Account(**doc)
        except (InvalidId, TypeError):
            return None
        return None

    async def get_account_by_email(self, email: str) -> Optional[Account]:
        doc = await self.collection.find_one({"email": email.lower()})
        if doc:
            return Account(**doc)
        return None

    async def save_account(self, account: Account) -> Account:
        """
        Write the account back if nobody else wrote it since it was read.

        Raises ConcurrentModification on a version mismatch.
        """
        updates = account.to_document()
        updates.pop("_id")
        updates["version"] = account.version + 1
        updates["updated_at"] = datetime.now(timezone.utc)

        result = await self.collection.find_one_and_update(
            {
                "_id": account.id,
                "version": account.version  # Optimistic lock
            },
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result:
            return Account(**result)

        if await self.collection.find_one({"_id": account.id}, {"_id": 1}) is None:
            raise NotFound("Account not found")
        raise ConcurrentModification(
            f"Account {account.id} was modified concurrently (version {account.version} is stale)"
        )

    async def mark_suspicious(self, account_id: ObjectId, reason: str) -> Optional[Account]:
        """
        Flag an account as suspicious and revoke installment eligibility.

        Single conditional update, so it only applies once. Returns the updated
        account, or None if it was already suspicious or does not exist.
        """
        now = datetime.now(timezone.utc)
        changes = [
            SettingsChange(field="is_suspicious", value=True, changed_at=now, reason=reason),
            SettingsChange(field="installments_enabled", value=False, changed_at=now, reason=reason),
        ]
        result = await self.collection.find_one_and_update(
            {"_id": account_id, "is_suspicious": False},
            {
                "$set": {
                    "is_suspicious": True,
                    "installments_enabled": False,
                    "updated_at": now
                },
                "$push": {
                    "settings_history": {"$each": [c.model_dump(mode="python") for c in changes]}
                },
                "$inc": {"version": 1}
            },
            return_document=ReturnDocument.AFTER
        )
        if result:
            return Account(**result)
        return None

    async def delete_account(self, account_id: str | ObjectId) -> bool:
        """Hard delete an account. Ledgers are removed by the caller."""
        try:
            result = await self.collection.delete_one({"_id": ObjectId(account_id)})
            return result.deleted_count > 0
        except (InvalidId, TypeError):
            return False
