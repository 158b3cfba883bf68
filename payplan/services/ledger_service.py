import logging
from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from payplan.core.exceptions import (
    AccountIneligible,
    ConcurrentModification,
    DuplicateReference,
    NotFound,
    PaymentIncomplete,
    PermissionDenied,
    PurchaseInactive,
)
from payplan.models.account import Account
from payplan.models.ledger import (
    Ledger,
    ObligationStatus,
    PaymentMode,
    PaymentStatus,
    ServiceStatus,
)
from payplan.repositories.ledger_repo import LedgerRepository
from payplan.repositories.purchase_repo import PurchaseRepository
from payplan.utils.plan_builder import build_obligations

logger = logging.getLogger(__name__)


def ensure_can_view(ledger: Ledger, actor: Account) -> None:
    """Only the paying account or an admin may act on a ledger."""
    if ledger.account_id != actor.id and not actor.is_admin:
        raise PermissionDenied("Not authorized for this ledger")


class LedgerService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.ledgers = LedgerRepository(db)
        self.purchases = PurchaseRepository(db)

    async def create_ledger(
        self,
        account: Account,
        purchase_id: str,
        payment_mode: PaymentMode,
        transaction_ref: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Ledger:
        """
        Open a ledger for a purchase.

        In installment mode the payer has already sent the first installment,
        so obligation 1 starts out submitted with the initiating reference and
        waits for admin approval.
        """
        now = now or datetime.now(timezone.utc)
        transaction_ref = transaction_ref.strip()
        payment_mode = PaymentMode(payment_mode)

        purchase = await self.purchases.get_purchase(purchase_id)
        if purchase is None:
            raise NotFound("Purchase not found")
        if not purchase.is_active:
            raise PurchaseInactive(f"{purchase.name} is not active")

        if payment_mode == PaymentMode.INSTALLMENT:
            if account.is_suspicious:
                raise AccountIneligible(
                    "Your account is marked as suspicious. Cannot use installment payments."
                )
            if not account.installments_enabled:
                raise AccountIneligible("Installment payments are not enabled for your account")

        if await self.ledgers.reference_in_use(transaction_ref):
            raise DuplicateReference(f"Transaction reference already used: {transaction_ref}")

        ledger = Ledger(
            account_id=account.id,
            purchase_id=purchase.id,
            transaction_ref=transaction_ref,
            total_cents=purchase.price_cents,
            payment_mode=payment_mode,
            notes=notes,
            created_at=now,
            updated_at=now
        )

        if payment_mode == PaymentMode.INSTALLMENT:
            ledger.obligations = build_obligations(
                purchase.price_cents, account.split_template.rules, now
            )
            first = ledger.obligations[0]
            first.status = ObligationStatus.SUBMITTED
            first.transaction_ref = transaction_ref
            first.submitted_at = now

        ledger.recompute_aggregates()
        ledger = await self.ledgers.insert_ledger(ledger)
        logger.info("Ledger %s created for account %s (%s, %d cents)",
                    ledger.id, account.id, ledger.payment_mode, ledger.total_cents)
        return ledger

    async def get_ledger(self, ledger_id: str, actor: Account) -> Ledger:
        ledger = await self.ledgers.get_ledger(ledger_id)
        if ledger is None:
            raise NotFound("Ledger not found")
        ensure_can_view(ledger, actor)
        return ledger

    async def list_ledgers(self, account: Account) -> List[Ledger]:
        return await self.ledgers.list_for_account(account.id)

    async def mark_completed(self, ledger_id: str, actor: Account) -> Ledger:
        """Close out the service. Needs at least one approved payment."""
        ledger = await self.get_ledger(ledger_id, actor)

        if ledger.payment_status not in (PaymentStatus.APPROVED, PaymentStatus.PARTIAL):
            raise PaymentIncomplete("Cannot complete service with pending payment")

        ledger.mark_completed()
        ledger.recompute_aggregates()
        ledger = await self.ledgers.save_ledger(ledger)
        logger.info("Ledger %s marked %s by %s", ledger.id, ServiceStatus.COMPLETED.value, actor.id)
        return ledger

    async def search_ledgers(
        self,
        admin: Account,
        payment_status: Optional[PaymentStatus] = None,
        payment_mode: Optional[PaymentMode] = None,
        obligation_status: Optional[ObligationStatus] = None,
        search: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None
    ) -> List[Ledger]:
        """List ledgers of every account (admin only)."""
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")
        return await self.ledgers.list_ledgers(
            payment_status=PaymentStatus(payment_status).value if payment_status else None,
            payment_mode=PaymentMode(payment_mode).value if payment_mode else None,
            obligation_status=ObligationStatus(obligation_status).value if obligation_status else None,
            search=search,
            created_from=created_from,
            created_to=created_to
        )

    async def ledger_stats(self, admin: Account) -> dict:
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")
        return await self.ledgers.stats()

    async def update_service_dates(
        self,
        ledger_id: str,
        admin: Account,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Ledger:
        """
        Move a paid ledger's service window (admin only).

        The service status follows the new dates: pending before the start,
        active inside the window, expired after it.
        """
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")
        now = now or datetime.now(timezone.utc)

        ledger = await self.ledgers.get_ledger(ledger_id)
        if ledger is None:
            raise NotFound("Ledger not found")
        if expected_version is not None and ledger.version != expected_version:
            raise ConcurrentModification(
                f"Ledger version {expected_version} is stale, current is {ledger.version}"
            )
        if ledger.payment_status not in (PaymentStatus.APPROVED, PaymentStatus.PARTIAL):
            raise PaymentIncomplete("Service dates can only be set once a payment is approved")

        ledger.reschedule(now, start_date=start_date, end_date=end_date)
        ledger = await self.ledgers.save_ledger(ledger)
        logger.info("Ledger %s service window set to %s - %s (%s) by %s",
                    ledger.id, ledger.start_date, ledger.end_date, ledger.service_status, admin.id)
        return ledger
