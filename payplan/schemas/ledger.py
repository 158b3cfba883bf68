from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from payplan.models.ledger import Decision, Ledger, Obligation, PaymentMode


class LedgerCreate(BaseModel):
    """Request body to open a ledger for a purchase."""
    purchase_id: str
    payment_mode: PaymentMode = PaymentMode.FULL
    transaction_ref: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)


class ObligationSubmit(BaseModel):
    transaction_ref: str = Field(..., min_length=1, max_length=100)
    version: Optional[int] = None  # Optimistic lock, optional


class DecisionRequest(BaseModel):
    decision: Decision
    notes: Optional[str] = Field(None, max_length=500)
    version: Optional[int] = None  # Optimistic lock, optional


class ServiceDatesUpdate(BaseModel):
    """Admin edit of the service window; omitted dates keep their value."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    version: Optional[int] = None  # Optimistic lock, optional


class ObligationResponse(BaseModel):
    number: int
    amount_cents: int
    percentage: int
    due_date: datetime
    status: str
    transaction_ref: Optional[str] = None
    submitted_at: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_obligation(cls, obligation: Obligation) -> "ObligationResponse":
        data = obligation.model_dump()
        data["approved_by"] = str(obligation.approved_by) if obligation.approved_by else None
        data["rejected_by"] = str(obligation.rejected_by) if obligation.rejected_by else None
        return cls(**data)


class LedgerSummary(BaseModel):
    total_cents: int
    amount_paid_cents: int
    amount_due_cents: int
    paid_percentage: float
    next_due_date: Optional[datetime] = None
    days_remaining: int
    is_overdue: bool


class LedgerResponse(BaseModel):
    """Ledger snapshot returned by every ledger endpoint."""
    id: str
    account_id: str
    purchase_id: str
    transaction_ref: str
    total_cents: int
    payment_mode: str
    obligations: List[ObligationResponse]
    amount_paid_cents: int
    amount_due_cents: int
    payment_status: str
    service_status: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_service_completed: bool
    marked_suspicious: bool
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    version: int
    summary: LedgerSummary
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_ledger(cls, ledger: Ledger, now: Optional[datetime] = None) -> "LedgerResponse":
        now = now or datetime.now(timezone.utc)
        return cls(
            id=str(ledger.id),
            account_id=str(ledger.account_id),
            purchase_id=str(ledger.purchase_id),
            transaction_ref=ledger.transaction_ref,
            total_cents=ledger.total_cents,
            payment_mode=ledger.payment_mode,
            obligations=[ObligationResponse.from_obligation(o) for o in ledger.obligations],
            amount_paid_cents=ledger.amount_paid_cents,
            amount_due_cents=ledger.amount_due_cents,
            payment_status=ledger.payment_status,
            service_status=ledger.service_status,
            start_date=ledger.start_date,
            end_date=ledger.end_date,
            is_service_completed=ledger.is_service_completed,
            marked_suspicious=ledger.marked_suspicious,
            notes=ledger.notes,
            admin_notes=ledger.admin_notes,
            version=ledger.version,
            summary=LedgerSummary(
                total_cents=ledger.total_cents,
                amount_paid_cents=ledger.amount_paid_cents,
                amount_due_cents=ledger.amount_due_cents,
                paid_percentage=ledger.paid_percentage(),
                next_due_date=ledger.next_due_date(),
                days_remaining=ledger.days_remaining(now),
                is_overdue=bool(ledger.overdue_obligations(now))
            ),
            created_at=ledger.created_at,
            updated_at=ledger.updated_at
        )
