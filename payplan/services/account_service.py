import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from payplan.core.config import settings
from payplan.core.exceptions import NotFound, PermissionDenied
from payplan.models.account import Account, AccountRole
from payplan.repositories.account_repo import AccountRepository
from payplan.repositories.ledger_repo import LedgerRepository

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.accounts = AccountRepository(db)
        self.ledgers = LedgerRepository(db)

    async def register(self, name: str, email: str) -> Account:
        """Create an account; configured admin emails get the admin role."""
        admin_emails = {e.lower() for e in settings.ADMIN_EMAILS}
        role = AccountRole.ADMIN if email.lower() in admin_emails else AccountRole.USER
        account = await self.accounts.create_account(name, email, role)
        logger.info("Account %s registered (%s)", account.id, account.role)
        return account

    async def delete_account(self, account_id: str, admin: Account) -> int:
        """Delete an account and every ledger it owns. Returns ledgers removed."""
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")

        account = await self.accounts.get_account(account_id)
        if account is None:
            raise NotFound("Account not found")

        removed = await self.ledgers.delete_for_account(account.id)
        await self.accounts.delete_account(account.id)
        logger.info("Account %s deleted with %d ledger(s)", account.id, removed)
        return removed
