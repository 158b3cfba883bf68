"""
Account eligibility gate.

Admin-only mutators for installment settings and the trust flag. Every write
goes through AccountRepository.save_account, so an admin edit racing the
overdue sweep fails with ConcurrentModification instead of losing an update.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase

from payplan.core.exceptions import (
    AccountIneligible,
    ConcurrentModification,
    InvalidSplit,
    NotFound,
    PermissionDenied,
)
from payplan.models.account import Account, SettingsChange, SplitRule
from payplan.repositories.account_repo import AccountRepository
from payplan.utils.plan_builder import validate_percentages

logger = logging.getLogger(__name__)

# Default spacing between installments when the admin gives only percentages
DEFAULT_DUE_DAYS_STEP = 30


def can_create_installment_plan(account: Account) -> bool:
    return account.can_create_installment_plan()


class EligibilityService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.accounts = AccountRepository(db)

    async def _load_for_update(
        self,
        account_id: str,
        admin: Account,
        expected_version: Optional[int]
    ) -> Account:
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")

        account = await self.accounts.get_account(account_id)
        if account is None:
            raise NotFound("Account not found")
        if expected_version is not None and account.version != expected_version:
            raise ConcurrentModification(
                f"Account version {expected_version} is stale, current is {account.version}"
            )
        return account

    async def set_enabled(
        self,
        account_id: str,
        enabled: bool,
        admin: Account,
        expected_version: Optional[int] = None
    ) -> Account:
        account = await self._load_for_update(account_id, admin, expected_version)

        if enabled and account.is_suspicious:
            raise AccountIneligible("Clear the suspicious flag before enabling installments")

        account.installments_enabled = enabled
        account.settings_history.append(
            SettingsChange(field="installments_enabled", value=enabled, changed_by=admin.id)
        )
        saved = await self.accounts.save_account(account)
        logger.info("Installments %s for account %s by %s",
                    "enabled" if enabled else "disabled", saved.id, admin.id)
        return saved

    async def set_split_template(
        self,
        account_id: str,
        percentages: Sequence[int],
        admin: Account,
        due_days: Optional[Sequence[int]] = None,
        expected_version: Optional[int] = None
    ) -> Account:
        validate_percentages(list(percentages), min_splits=2)

        if due_days is None:
            due_days = [index * DEFAULT_DUE_DAYS_STEP for index in range(len(percentages))]
        elif len(due_days) != len(percentages):
            raise InvalidSplit("due_days must have one entry per split")
        elif any(days < 0 for days in due_days):
            raise InvalidSplit("due_days must not be negative")

        account = await self._load_for_update(account_id, admin, expected_version)

        rules: List[SplitRule] = [
            SplitRule(percentage=percentage, due_days=days)
            for percentage, days in zip(percentages, due_days)
        ]
        template = account.split_template
        template.version += 1
        template.rules = rules
        template.updated_by = admin.id
        template.updated_at = datetime.now(timezone.utc)

        account.settings_history.append(SettingsChange(
            field="split_template",
            value=[rule.model_dump() for rule in rules],
            changed_by=admin.id
        ))
        saved = await self.accounts.save_account(account)
        logger.info("Split template v%s set for account %s: %s",
                    template.version, saved.id, "/".join(str(p) for p in percentages))
        return saved

    async def set_suspicious(
        self,
        account_id: str,
        suspicious: bool,
        admin: Account,
        reason: str = "",
        expected_version: Optional[int] = None
    ) -> Account:
        """
        Set the trust flag. Marking suspicious also disables installments;
        clearing it leaves them disabled until set_enabled(True).
        """
        account = await self._load_for_update(account_id, admin, expected_version)

        account.is_suspicious = suspicious
        account.settings_history.append(
            SettingsChange(field="is_suspicious", value=suspicious, changed_by=admin.id, reason=reason)
        )
        if suspicious and account.installments_enabled:
            account.installments_enabled = False
            account.settings_history.append(
                SettingsChange(field="installments_enabled", value=False, changed_by=admin.id, reason=reason)
            )

        saved = await self.accounts.save_account(account)
        logger.info("Account %s marked %s by %s",
                    saved.id, "suspicious" if suspicious else "not suspicious", admin.id)
        return saved
