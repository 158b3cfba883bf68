"""Tests for installment submission and admin decisions."""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

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
from payplan.models.ledger import (
    Decision,
    ObligationStatus,
    PaymentMode,
    PaymentStatus,
    ServiceStatus,
)
from payplan.repositories.ledger_repo import LedgerRepository
from payplan.services.approval_service import ApprovalService
from payplan.services.ledger_service import LedgerService
from payplan.services.notification_service import EmailNotifier

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
LATER = NOW + timedelta(days=20)


@pytest_asyncio.fixture
async def plan(test_db, payer, purchase):
    """Installment ledger with the first installment already submitted."""
    return await LedgerService(test_db).create_ledger(
        payer, purchase.id, PaymentMode.INSTALLMENT, "TX-1", now=NOW
    )


@pytest_asyncio.fixture
async def full_payment(test_db, other_account, purchase):
    return await LedgerService(test_db).create_ledger(
        other_account, purchase.id, PaymentMode.FULL, "TX-FULL", now=NOW
    )


class TestInstallmentFlow:
    """End-to-end installment approval."""

    @pytest.mark.asyncio
    async def test_two_installment_happy_path(self, test_db, payer, admin_account, plan, notifier):
        service = ApprovalService(test_db, notifier)

        ledger = await service.decide_obligation(
            plan.id, 1, Decision.APPROVE, admin_account, now=NOW
        )
        first = ledger.get_obligation(1)
        assert first.status == ObligationStatus.PAID
        assert first.paid_date == NOW
        assert first.approved_by == admin_account.id
        assert ledger.payment_status == PaymentStatus.PARTIAL
        assert ledger.amount_paid_cents == 300
        assert ledger.amount_due_cents == 700
        assert ledger.service_status == ServiceStatus.ACTIVE
        assert ledger.start_date == NOW
        assert ledger.end_date == datetime(2026, 4, 15, 12, 0, tzinfo=timezone.utc)
        notifier.service_enrolled.assert_awaited_once()
        notifier.payment_approved.assert_not_awaited()

        ledger = await service.submit_obligation(plan.id, 2, "TX-2", payer, now=LATER)
        assert ledger.get_obligation(2).status == ObligationStatus.SUBMITTED
        assert ledger.get_obligation(2).transaction_ref == "TX-2"
        assert ledger.payment_status == PaymentStatus.PARTIAL

        ledger = await service.decide_obligation(
            plan.id, 2, Decision.APPROVE, admin_account, now=LATER
        )
        assert ledger.payment_status == PaymentStatus.APPROVED
        assert ledger.amount_paid_cents == 1000
        assert ledger.amount_due_cents == 0
        # The window opened on the first approval and is not reset
        assert ledger.start_date == NOW
        notifier.payment_approved.assert_awaited_once()
        notifier.service_enrolled.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_decide_pending_installment(self, test_db, admin_account, plan, notifier):
        """A pending installment cannot be decided and the ledger is untouched."""
        with pytest.raises(NotSubmitted):
            await ApprovalService(test_db, notifier).decide_obligation(
                plan.id, 2, Decision.APPROVE, admin_account, now=NOW
            )

        stored = await LedgerRepository(test_db).get_ledger(plan.id)
        assert stored.version == plan.version
        assert stored.get_obligation(2).status == ObligationStatus.PENDING

    @pytest.mark.asyncio
    async def test_reject_then_resubmit(self, test_db, payer, admin_account, plan, notifier):
        service = ApprovalService(test_db, notifier)

        ledger = await service.decide_obligation(
            plan.id, 1, Decision.REJECT, admin_account, notes="No such transfer", now=NOW
        )
        first = ledger.get_obligation(1)
        assert first.status == ObligationStatus.REJECTED
        assert first.transaction_ref is None
        assert first.rejected_by == admin_account.id
        assert first.notes == "No such transfer"
        assert ledger.payment_status == PaymentStatus.PENDING
        assert ledger.start_date is None

        ledger = await service.submit_obligation(plan.id, 1, "TX-1-RETRY", payer, now=LATER)
        assert ledger.get_obligation(1).status == ObligationStatus.SUBMITTED
        assert ledger.get_obligation(1).transaction_ref == "TX-1-RETRY"
        notifier.payment_approved.assert_not_awaited()
        notifier.service_enrolled.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submit_paid_installment(self, test_db, payer, admin_account, plan, notifier):
        service = ApprovalService(test_db, notifier)
        await service.decide_obligation(plan.id, 1, Decision.APPROVE, admin_account, now=NOW)

        with pytest.raises(AlreadyPaid):
            await service.submit_obligation(plan.id, 1, "TX-AGAIN", payer)

    @pytest.mark.asyncio
    async def test_first_installment_awaiting_approval(self, test_db, payer, plan, notifier):
        with pytest.raises(AlreadyApproved):
            await ApprovalService(test_db, notifier).submit_obligation(plan.id, 1, "TX-AGAIN", payer)

    @pytest.mark.asyncio
    async def test_only_payer_can_submit(self, test_db, other_account, plan, notifier):
        with pytest.raises(PermissionDenied):
            await ApprovalService(test_db, notifier).submit_obligation(plan.id, 2, "TX-2", other_account)

    @pytest.mark.asyncio
    async def test_submit_with_used_reference(self, test_db, payer, plan, full_payment, notifier):
        with pytest.raises(DuplicateReference):
            await ApprovalService(test_db, notifier).submit_obligation(
                plan.id, 2, full_payment.transaction_ref, payer
            )

    @pytest.mark.asyncio
    async def test_unknown_installment(self, test_db, payer, plan, notifier):
        with pytest.raises(NotFound):
            await ApprovalService(test_db, notifier).submit_obligation(plan.id, 7, "TX-7", payer)

    @pytest.mark.asyncio
    async def test_submit_on_full_payment(self, test_db, other_account, full_payment, notifier):
        with pytest.raises(InvalidPaymentMode):
            await ApprovalService(test_db, notifier).submit_obligation(
                full_payment.id, 1, "TX-X", other_account
            )

    @pytest.mark.asyncio
    async def test_non_admin_cannot_decide(self, test_db, payer, plan, notifier):
        with pytest.raises(PermissionDenied):
            await ApprovalService(test_db, notifier).decide_obligation(
                plan.id, 1, Decision.APPROVE, payer
            )


class TestFullPayment:
    """Single admin decision for full-mode ledgers."""

    @pytest.mark.asyncio
    async def test_approve(self, test_db, admin_account, full_payment, notifier):
        ledger = await ApprovalService(test_db, notifier).decide_payment(
            full_payment.id, Decision.APPROVE, admin_account, now=NOW
        )

        assert ledger.payment_status == PaymentStatus.APPROVED
        assert ledger.amount_paid_cents == 1000
        assert ledger.service_status == ServiceStatus.ACTIVE
        assert ledger.start_date == NOW
        notifier.payment_approved.assert_awaited_once()
        notifier.service_enrolled.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reject(self, test_db, admin_account, full_payment, notifier):
        ledger = await ApprovalService(test_db, notifier).decide_payment(
            full_payment.id, Decision.REJECT, admin_account, notes="Wrong amount", now=NOW
        )

        assert ledger.payment_status == PaymentStatus.REJECTED
        assert ledger.service_status == ServiceStatus.EXPIRED
        assert ledger.start_date is None
        assert ledger.amount_paid_cents == 0
        assert ledger.admin_notes == "Wrong amount"
        notifier.payment_approved.assert_not_awaited()
        notifier.service_enrolled.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_decided_once(self, test_db, admin_account, full_payment, notifier):
        service = ApprovalService(test_db, notifier)
        await service.decide_payment(full_payment.id, Decision.REJECT, admin_account)

        with pytest.raises(InvalidTransition):
            await service.decide_payment(full_payment.id, Decision.APPROVE, admin_account)

    @pytest.mark.asyncio
    async def test_approve_twice(self, test_db, admin_account, full_payment, notifier):
        service = ApprovalService(test_db, notifier)
        await service.decide_payment(full_payment.id, Decision.APPROVE, admin_account)

        with pytest.raises(AlreadyApproved):
            await service.decide_payment(full_payment.id, Decision.APPROVE, admin_account)

    @pytest.mark.asyncio
    async def test_installment_ledger_rejected(self, test_db, admin_account, plan, notifier):
        with pytest.raises(InvalidPaymentMode):
            await ApprovalService(test_db, notifier).decide_payment(
                plan.id, Decision.APPROVE, admin_account
            )


class TestConcurrentDecisions:
    """Two admins deciding from the same snapshot."""

    @pytest.mark.asyncio
    async def test_second_decision_on_stale_version(self, test_db, admin_account, plan, notifier):
        service = ApprovalService(test_db, notifier)
        seen_version = plan.version

        ledger = await service.decide_obligation(
            plan.id, 1, Decision.APPROVE, admin_account, expected_version=seen_version, now=NOW
        )
        assert ledger.version == seen_version + 1

        with pytest.raises(ConcurrentModification):
            await service.decide_obligation(
                plan.id, 1, Decision.REJECT, admin_account, expected_version=seen_version, now=NOW
            )

        stored = await LedgerRepository(test_db).get_ledger(plan.id)
        assert stored.get_obligation(1).status == ObligationStatus.PAID
        assert stored.amount_paid_cents == 300
        assert stored.version == seen_version + 1

    @pytest.mark.asyncio
    async def test_interleaved_approvals(self, test_db, admin_account, plan, notifier, monkeypatch):
        """Both admins read before either writes; exactly one approval lands."""
        read_ledger = LedgerRepository.get_ledger

        async def get_ledger_then_yield(self, ledger_id):
            ledger = await read_ledger(self, ledger_id)
            await asyncio.sleep(0)
            return ledger

        monkeypatch.setattr(LedgerRepository, "get_ledger", get_ledger_then_yield)
        service = ApprovalService(test_db, notifier)

        results = await asyncio.gather(
            service.decide_obligation(plan.id, 1, Decision.APPROVE, admin_account, now=NOW),
            service.decide_obligation(plan.id, 1, Decision.APPROVE, admin_account, now=NOW),
            return_exceptions=True
        )

        conflicts = [r for r in results if isinstance(r, ConcurrentModification)]
        committed = [r for r in results if not isinstance(r, Exception)]
        assert len(conflicts) == 1
        assert len(committed) == 1

        monkeypatch.undo()
        stored = await LedgerRepository(test_db).get_ledger(plan.id)
        assert stored.get_obligation(1).status == ObligationStatus.PAID
        assert stored.amount_paid_cents == 300
        assert stored.version == plan.version + 1
        notifier.service_enrolled.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lost_update_is_refused(self, test_db, admin_account, plan):
        """A write based on an outdated read fails instead of overwriting."""
        repo = LedgerRepository(test_db)
        stale = await repo.get_ledger(plan.id)

        await ApprovalService(test_db, AsyncMock(spec=EmailNotifier)).decide_obligation(
            plan.id, 1, Decision.APPROVE, admin_account, now=NOW
        )

        stale.get_obligation(1).status = ObligationStatus.REJECTED
        with pytest.raises(ConcurrentModification):
            await repo.save_ledger(stale)


class TestNotificationFailure:
    """Email failures never undo a committed decision."""

    @pytest.mark.asyncio
    async def test_relay_down(self, test_db, admin_account, full_payment):
        notifier = EmailNotifier(api_url="http://mail.invalid/send", timeout=1.0)
        notifier.send = AsyncMock(side_effect=httpx.ConnectError("relay down"))

        ledger = await ApprovalService(test_db, notifier).decide_payment(
            full_payment.id, Decision.APPROVE, admin_account, now=NOW
        )

        assert ledger.payment_status == PaymentStatus.APPROVED
        assert notifier.send.await_count == 2
        stored = await LedgerRepository(test_db).get_ledger(full_payment.id)
        assert stored.payment_status == PaymentStatus.APPROVED
