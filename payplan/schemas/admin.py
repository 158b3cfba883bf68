from typing import List

from pydantic import BaseModel

from payplan.services.overdue_service import FlaggedAccount


class FlaggedAccountResponse(BaseModel):
    account_id: str
    email: str
    name: str
    ledger_id: str
    reason: str


class SweepResponse(BaseModel):
    message: str
    suspicious_accounts: List[FlaggedAccountResponse]

    @classmethod
    def from_flagged(cls, flagged: List[FlaggedAccount]) -> "SweepResponse":
        return cls(
            message=f"Marked {len(flagged)} accounts as suspicious",
            suspicious_accounts=[
                FlaggedAccountResponse(
                    account_id=str(f.account_id),
                    email=f.email,
                    name=f.name,
                    ledger_id=str(f.ledger_id),
                    reason=f.reason
                )
                for f in flagged
            ]
        )


class DeleteResponse(BaseModel):
    deleted: bool
    ledgers_removed: int


class InstallmentStatusStats(BaseModel):
    payment_status: str
    count: int
    total_cents: int
    paid_cents: int


class LedgerStatsResponse(BaseModel):
    total_ledgers: int
    awaiting_review: int
    revenue_cents: int
    installments_by_status: List[InstallmentStatusStats]
