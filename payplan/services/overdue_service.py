"""
Overdue & trust scanner.

A sweep walks installment ledgers that have not been flagged yet. When a
ledger has an open installment past its due date, the owning account is
marked suspicious (which revokes installment eligibility) and the ledger is
flagged so later sweeps skip it.

The two writes are not transactional. The account update is a conditional
single-document write that applies at most once, and the ledger flag is a
versioned write; a sweep interrupted between them is safe to run again.
Obligation statuses are never touched here.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ConfigDict

from payplan.core.exceptions import ConcurrentModification, NotFound
from payplan.models.base import PyObjectId
from payplan.models.ledger import Ledger
from payplan.repositories.account_repo import AccountRepository
from payplan.repositories.ledger_repo import LedgerRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarkSuspicious:
    """Command: revoke an account's trust because of one overdue ledger."""
    account_id: ObjectId
    ledger_id: ObjectId
    reason: str


class FlaggedAccount(BaseModel):
    account_id: PyObjectId
    email: str
    name: str
    ledger_id: PyObjectId
    reason: str

    model_config = ConfigDict(arbitrary_types_allowed=True)


class OverdueService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.ledgers = LedgerRepository(db)
        self.accounts = AccountRepository(db)

    async def sweep(self, now: Optional[datetime] = None) -> List[FlaggedAccount]:
        """
        Flag accounts with lapsed installments.

        Returns only accounts newly marked suspicious by this run; a second
        run with nothing new overdue returns an empty list and writes nothing.
        """
        now = now or datetime.now(timezone.utc)
        flagged: List[FlaggedAccount] = []

        for ledger in await self.ledgers.find_sweep_candidates():
            overdue = ledger.overdue_obligations(now)
            if not overdue:
                continue

            first = overdue[0]
            command = MarkSuspicious(
                account_id=ledger.account_id,
                ledger_id=ledger.id,
                reason=f"Installment {first.number} of ledger {ledger.id} overdue since {first.due_date:%Y-%m-%d}"
            )
            result = await self.apply(command, ledger)
            if result is not None:
                flagged.append(result)

        logger.info("Overdue sweep marked %d account(s) suspicious", len(flagged))
        return flagged

    async def apply(
        self,
        command: MarkSuspicious,
        ledger: Optional[Ledger] = None
    ) -> Optional[FlaggedAccount]:
        """
        Apply one MarkSuspicious command.

        Returns None when the account was already suspicious (or is gone), in
        which case nothing is written.
        """
        account = await self.accounts.mark_suspicious(command.account_id, command.reason)
        if account is None:
            return None
        logger.warning("Account %s marked suspicious: %s", account.id, command.reason)

        await self._flag_ledger(command.ledger_id, ledger)
        return FlaggedAccount(
            account_id=account.id,
            email=account.email,
            name=account.name,
            ledger_id=command.ledger_id,
            reason=command.reason
        )

    async def _flag_ledger(self, ledger_id: ObjectId, ledger: Optional[Ledger]) -> None:
        if ledger is None:
            ledger = await self.ledgers.get_ledger(ledger_id)
            if ledger is None:
                return
        ledger.marked_suspicious = True
        try:
            await self.ledgers.save_ledger(ledger)
        except (ConcurrentModification, NotFound) as exc:
            # Account is already flagged, so a rerun will not report it twice
            logger.warning("Could not flag ledger %s: %s", ledger_id, exc)
