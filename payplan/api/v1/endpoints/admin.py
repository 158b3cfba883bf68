from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from payplan.core.auth import require_admin
from payplan.db.mongo import get_db
from payplan.models.account import Account
from payplan.models.ledger import ObligationStatus, PaymentMode, PaymentStatus
from payplan.schemas.account import (
    AccountResponse,
    InstallmentToggle,
    SplitTemplateUpdate,
    SuspicionUpdate,
)
from payplan.schemas.admin import DeleteResponse, LedgerStatsResponse, SweepResponse
from payplan.schemas.ledger import LedgerResponse, ServiceDatesUpdate
from payplan.services.account_service import AccountService
from payplan.services.eligibility_service import EligibilityService
from payplan.services.ledger_service import LedgerService
from payplan.services.overdue_service import OverdueService

router = APIRouter()

@router.post("/overdue-sweep", response_model=SweepResponse)
async def run_overdue_sweep(
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    """Mark accounts with lapsed installments as suspicious."""
    flagged = await OverdueService(db).sweep()
    return SweepResponse.from_flagged(flagged)

@router.patch("/accounts/{account_id}/installments", response_model=AccountResponse)
async def set_installments_enabled(
    account_id: str,
    payload: InstallmentToggle,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    account = await EligibilityService(db).set_enabled(
        account_id, payload.enabled, admin, expected_version=payload.version
    )
    return AccountResponse.from_account(account)

@router.put("/accounts/{account_id}/installments/splits", response_model=AccountResponse)
async def set_split_template(
    account_id: str,
    payload: SplitTemplateUpdate,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    account = await EligibilityService(db).set_split_template(
        account_id,
        payload.splits,
        admin,
        due_days=payload.due_days,
        expected_version=payload.version
    )
    return AccountResponse.from_account(account)

@router.patch("/accounts/{account_id}/suspicion", response_model=AccountResponse)
async def set_suspicion(
    account_id: str,
    payload: SuspicionUpdate,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    account = await EligibilityService(db).set_suspicious(
        account_id,
        payload.is_suspicious,
        admin,
        reason=payload.reason,
        expected_version=payload.version
    )
    return AccountResponse.from_account(account)

@router.delete("/accounts/{account_id}", response_model=DeleteResponse)
async def delete_account(
    account_id: str,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    """Delete an account together with its ledgers."""
    removed = await AccountService(db).delete_account(account_id, admin)
    return DeleteResponse(deleted=True, ledgers_removed=removed)

@router.get("/ledgers", response_model=List[LedgerResponse])
async def list_ledgers(
    payment_status: Optional[PaymentStatus] = None,
    payment_mode: Optional[PaymentMode] = None,
    obligation_status: Optional[ObligationStatus] = None,
    search: Optional[str] = Query(None, max_length=100),
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    """
    All ledgers, newest first.

    - obligation_status=submitted: installments waiting for a decision
    - search: matches transaction references
    """
    ledgers = await LedgerService(db).search_ledgers(
        admin,
        payment_status=payment_status,
        payment_mode=payment_mode,
        obligation_status=obligation_status,
        search=search,
        created_from=created_from,
        created_to=created_to
    )
    return [LedgerResponse.from_ledger(ledger) for ledger in ledgers]

@router.get("/ledgers/stats", response_model=LedgerStatsResponse)
async def ledger_stats(
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    return LedgerStatsResponse(**await LedgerService(db).ledger_stats(admin))

@router.patch("/ledgers/{ledger_id}/dates", response_model=LedgerResponse)
async def update_service_dates(
    ledger_id: str,
    payload: ServiceDatesUpdate,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    """Move the service window of a paid ledger."""
    ledger = await LedgerService(db).update_service_dates(
        ledger_id,
        admin,
        start_date=payload.start_date,
        end_date=payload.end_date,
        expected_version=payload.version
    )
    return LedgerResponse.from_ledger(ledger)
