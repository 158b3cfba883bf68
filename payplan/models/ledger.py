"""
Ledger model - payment record for one purchase attempt.

Design principles:
- One ledger per purchase attempt, obligations embedded (no separate store)
- payment_status, amount_paid_cents and amount_due_cents are a cache of the
  obligation statuses; recompute_aggregates() is the only writer
- Full mode: pending → approved | rejected, decided once by an admin
- Installment mode: pending → partial → approved, never rejected as a whole
- All amounts in integer cents
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from payplan.core.exceptions import InvalidServiceDates, NotFound
from payplan.models.base import MongoModel, PyObjectId, UTCDateTime, _as_utc
from payplan.utils.duration import compute_end_date


class PaymentMode(str, Enum):
    FULL = "full"
    INSTALLMENT = "installment"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    APPROVED = "approved"
    REJECTED = "rejected"


class ServiceStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class ObligationStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    PAID = "paid"
    REJECTED = "rejected"
    OVERDUE = "overdue"  # advisory only, the overdue sweep never assigns it
    CANCELLED = "cancelled"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# Obligations still waiting on money or a decision
OPEN_OBLIGATION_STATUSES = (ObligationStatus.PENDING, ObligationStatus.SUBMITTED)


class Obligation(BaseModel):
    """
    One installment within a ledger.

    Only path to paid: pending → submitted → paid. A rejected obligation has
    its transaction reference cleared and may be submitted again.
    """
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        use_enum_values=True,
        validate_assignment=True,
        validate_default=True
    )

    number: int  # 1-based, unique within the ledger
    amount_cents: int
    percentage: int
    due_date: UTCDateTime
    status: ObligationStatus = ObligationStatus.PENDING

    transaction_ref: Optional[str] = None
    submitted_at: Optional[UTCDateTime] = None
    paid_date: Optional[UTCDateTime] = None
    approved_at: Optional[UTCDateTime] = None
    approved_by: Optional[PyObjectId] = None
    rejected_at: Optional[UTCDateTime] = None
    rejected_by: Optional[PyObjectId] = None
    notes: Optional[str] = None

    def is_overdue(self, now: datetime) -> bool:
        return self.status in OPEN_OBLIGATION_STATUSES and self.due_date < now


class Ledger(MongoModel):
    account_id: PyObjectId
    purchase_id: PyObjectId
    transaction_ref: str  # Globally unique across ledgers

    total_cents: int
    payment_mode: PaymentMode = PaymentMode.FULL
    obligations: List[Obligation] = []

    amount_paid_cents: int = 0
    amount_due_cents: int = 0
    payment_status: PaymentStatus = PaymentStatus.PENDING

    service_status: ServiceStatus = ServiceStatus.PENDING
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None

    is_service_completed: bool = False
    marked_suspicious: bool = False

    notes: Optional[str] = None
    admin_notes: Optional[str] = None

    version: int = 1

    @property
    def is_installment(self) -> bool:
        return self.payment_mode == PaymentMode.INSTALLMENT

    def get_obligation(self, number: int) -> Obligation:
        for obligation in self.obligations:
            if obligation.number == number:
                return obligation
        raise NotFound(f"Installment {number} not found")

    def all_obligations_paid(self) -> bool:
        return bool(self.obligations) and all(
            o.status == ObligationStatus.PAID for o in self.obligations
        )

    def recompute_aggregates(self) -> None:
        """
        Re-derive totals and payment status from the ledger's own state.

        Idempotent; touches nothing outside this ledger.
        """
        if self.is_installment and self.obligations:
            paid = sum(
                o.amount_cents for o in self.obligations
                if o.status == ObligationStatus.PAID
            )
            self.amount_paid_cents = paid
            self.amount_due_cents = self.total_cents - paid

            paid_count = sum(1 for o in self.obligations if o.status == ObligationStatus.PAID)
            if paid_count == 0:
                self.payment_status = PaymentStatus.PENDING
            elif paid_count == len(self.obligations):
                self.payment_status = PaymentStatus.APPROVED
            else:
                self.payment_status = PaymentStatus.PARTIAL
        else:
            approved = self.payment_status == PaymentStatus.APPROVED
            self.amount_paid_cents = self.total_cents if approved else 0
            self.amount_due_cents = self.total_cents - self.amount_paid_cents

        if self.is_service_completed:
            self.service_status = ServiceStatus.COMPLETED

    def activate_service(self, now: datetime, duration: str | None) -> bool:
        """
        Open the service window. Returns False when a window is already set,
        whether by an earlier approval or by an admin.
        """
        if self.start_date is not None:
            return False

        self.start_date = now
        self.end_date = compute_end_date(now, duration)
        self.service_status = ServiceStatus.ACTIVE
        self.recompute_aggregates()
        return True

    def reschedule(
        self,
        now: datetime,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> None:
        """
        Move the service window and re-derive the service status from it.

        A completed service stays completed.
        """
        start = start_date if start_date is not None else self.start_date
        end = end_date if end_date is not None else self.end_date
        if start is None or end is None:
            raise InvalidServiceDates("Both a start and an end date are required")
        start, end = _as_utc(start), _as_utc(end)
        if end <= start:
            raise InvalidServiceDates("End date must be after the start date")

        self.start_date = start
        self.end_date = end

        if self.is_service_completed:
            self.service_status = ServiceStatus.COMPLETED
        elif now < self.start_date:
            self.service_status = ServiceStatus.PENDING
        elif now <= self.end_date:
            self.service_status = ServiceStatus.ACTIVE
        else:
            self.service_status = ServiceStatus.EXPIRED

    def mark_completed(self) -> None:
        self.is_service_completed = True
        self.service_status = ServiceStatus.COMPLETED

    def overdue_obligations(self, now: datetime) -> List[Obligation]:
        if not self.is_installment:
            return []
        return [o for o in self.obligations if o.is_overdue(now)]

    def next_due_date(self) -> Optional[datetime]:
        if not self.is_installment:
            return None
        pending = sorted(
            (o for o in self.obligations if o.status == ObligationStatus.PENDING),
            key=lambda o: o.due_date
        )
        return pending[0].due_date if pending else None

    def days_remaining(self, now: datetime) -> int:
        if self.end_date is None or self.service_status != ServiceStatus.ACTIVE:
            return 0
        seconds = (self.end_date - now).total_seconds()
        return max(-int(-seconds // 86400), 0)

    def paid_percentage(self) -> float:
        if self.total_cents <= 0:
            return 0.0
        return self.amount_paid_cents * 100 / self.total_cents
