"""
Approval workflow: payers submit installments, admins decide.

Each operation loads one ledger, applies the transition in memory, re-derives
the aggregates and writes the ledger back with a version check. Notification
emails go out only after the write has been committed.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from payplan.core.exceptions import (
    AlreadyApproved,
    AlreadyPaid,
    ConcurrentModification,
    DuplicateReference,
    InvalidPaymentMode,
    InvalidTransition,
    NotFound,
    NotSubmitted,
    PermissionDenied,
)
from payplan.models.account import Account
from payplan.models.ledger import (
    Decision,
    Ledger,
    ObligationStatus,
    PaymentStatus,
    ServiceStatus,
)
from payplan.repositories.account_repo import AccountRepository
from payplan.repositories.ledger_repo import LedgerRepository
from payplan.repositories.purchase_repo import PurchaseRepository
from payplan.services.notification_service import EmailNotifier

logger = logging.getLogger(__name__)


class ApprovalService:
    def __init__(self, db: AsyncIOMotorDatabase, notifier: Optional[EmailNotifier] = None):
        self.ledgers = LedgerRepository(db)
        self.purchases = PurchaseRepository(db)
        self.accounts = AccountRepository(db)
        self.notifier = notifier or EmailNotifier()

    async def _load(self, ledger_id: str, expected_version: Optional[int]) -> Ledger:
        ledger = await self.ledgers.get_ledger(ledger_id)
        if ledger is None:
            raise NotFound("Ledger not found")
        if expected_version is not None and ledger.version != expected_version:
            raise ConcurrentModification(
                f"Ledger version {expected_version} is stale, current is {ledger.version}"
            )
        return ledger

    async def _duration_for(self, ledger: Ledger) -> Optional[str]:
        purchase = await self.purchases.get_purchase(ledger.purchase_id)
        return purchase.duration if purchase else None

    async def submit_obligation(
        self,
        ledger_id: str,
        number: int,
        transaction_ref: str,
        actor: Account,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Ledger:
        """Attach a transaction reference to an installment and queue it for review."""
        now = now or datetime.now(timezone.utc)
        transaction_ref = transaction_ref.strip()

        ledger = await self._load(ledger_id, expected_version)
        if ledger.account_id != actor.id:
            raise PermissionDenied("Only the paying account can submit installments")
        if not ledger.is_installment:
            raise InvalidPaymentMode("This is not an installment payment")

        obligation = ledger.get_obligation(number)
        if obligation.status == ObligationStatus.PAID:
            raise AlreadyPaid(f"Installment {number} already paid")
        if number == 1 and obligation.status == ObligationStatus.SUBMITTED:
            raise AlreadyApproved("First installment is waiting for admin approval")

        if await self.ledgers.reference_in_use(transaction_ref):
            raise DuplicateReference(f"Transaction reference already used: {transaction_ref}")

        obligation.status = ObligationStatus.SUBMITTED
        obligation.submitted_at = now
        obligation.transaction_ref = transaction_ref

        ledger.recompute_aggregates()
        ledger = await self.ledgers.save_ledger(ledger)
        logger.info("Installment %d of ledger %s submitted", number, ledger.id)
        return ledger

    async def decide_obligation(
        self,
        ledger_id: str,
        number: int,
        decision: Decision,
        admin: Account,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Ledger:
        """
        Approve or reject a submitted installment.

        Approving the first installment opens the service window; approving
        the last one marks the whole ledger approved. Rejection clears the
        transaction reference so the payer can resubmit.
        """
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")
        now = now or datetime.now(timezone.utc)
        decision = Decision(decision)

        ledger = await self._load(ledger_id, expected_version)
        if not ledger.is_installment:
            raise InvalidPaymentMode("This is not an installment payment")

        obligation = ledger.get_obligation(number)
        if obligation.status != ObligationStatus.SUBMITTED:
            raise NotSubmitted(
                f"Installment {number} is {obligation.status}, only submitted installments can be decided"
            )

        previous_status = ledger.payment_status
        activated = False

        if decision == Decision.APPROVE:
            obligation.status = ObligationStatus.PAID
            obligation.paid_date = now
            obligation.approved_at = now
            obligation.approved_by = admin.id
            ledger.recompute_aggregates()

            duration = await self._duration_for(ledger)
            if number == 1 and ledger.start_date is None:
                activated = ledger.activate_service(now, duration)
            if ledger.all_obligations_paid():
                activated = ledger.activate_service(now, duration) or activated
        else:
            obligation.status = ObligationStatus.REJECTED
            obligation.rejected_at = now
            obligation.rejected_by = admin.id
            obligation.transaction_ref = None

        if notes:
            obligation.notes = notes

        ledger.recompute_aggregates()
        ledger = await self.ledgers.save_ledger(ledger)
        logger.info("Installment %d of ledger %s %s by %s (payment %s)",
                    number, ledger.id, decision.value, admin.id, ledger.payment_status)

        await self._notify(ledger, previous_status, activated)
        return ledger

    async def decide_payment(
        self,
        ledger_id: str,
        decision: Decision,
        admin: Account,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Ledger:
        """Approve or reject a full-mode payment."""
        if not admin.is_admin:
            raise PermissionDenied("Administrator access required")
        now = now or datetime.now(timezone.utc)
        decision = Decision(decision)

        ledger = await self._load(ledger_id, expected_version)
        if ledger.is_installment:
            raise InvalidPaymentMode("Installment payments are decided per installment")
        if ledger.payment_status == PaymentStatus.APPROVED:
            raise AlreadyApproved("Payment already approved")
        if ledger.payment_status == PaymentStatus.REJECTED:
            raise InvalidTransition("Payment already rejected")

        previous_status = ledger.payment_status
        activated = False

        if decision == Decision.APPROVE:
            ledger.payment_status = PaymentStatus.APPROVED
            ledger.recompute_aggregates()
            activated = ledger.activate_service(now, await self._duration_for(ledger))
        else:
            ledger.payment_status = PaymentStatus.REJECTED
            ledger.service_status = ServiceStatus.EXPIRED

        if notes:
            ledger.admin_notes = notes

        ledger.recompute_aggregates()
        ledger = await self.ledgers.save_ledger(ledger)
        logger.info("Payment %s %s by %s", ledger.id, ledger.payment_status, admin.id)

        await self._notify(ledger, previous_status, activated)
        return ledger

    async def _notify(self, ledger: Ledger, previous_status: str, activated: bool) -> None:
        """Fire-and-forget emails for a committed transition."""
        approved_now = (
            ledger.payment_status == PaymentStatus.APPROVED
            and previous_status != PaymentStatus.APPROVED
        )
        if not approved_now and not activated:
            return

        account = await self.accounts.get_account(ledger.account_id)
        purchase = await self.purchases.get_purchase(ledger.purchase_id)
        if account is None:
            logger.warning("No account %s to notify for ledger %s", ledger.account_id, ledger.id)
            return
        service_name = purchase.name if purchase else "your service"

        if approved_now:
            await self.notifier.payment_approved(
                account.email, account.name, service_name, ledger.transaction_ref
            )
        if activated:
            await self.notifier.service_enrolled(
                account.email, account.name, service_name, ledger.start_date, ledger.end_date
            )
