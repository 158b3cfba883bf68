from typing import List

from fastapi import APIRouter, Depends, status

from payplan.core.auth import get_current_account, require_admin
from payplan.db.mongo import get_db
from payplan.models.account import Account
from payplan.schemas.ledger import (
    DecisionRequest,
    LedgerCreate,
    LedgerResponse,
    ObligationSubmit,
)
from payplan.services.approval_service import ApprovalService
from payplan.services.ledger_service import LedgerService

router = APIRouter()

@router.post("", response_model=LedgerResponse, status_code=status.HTTP_201_CREATED)
async def create_ledger(
    payload: LedgerCreate,
    current_account: Account = Depends(get_current_account),
    db = Depends(get_db)
):
    """
    Start paying for a purchase.

    - full: the whole price waits for admin approval
    - installment: the first installment is submitted with this reference
    """
    ledger = await LedgerService(db).create_ledger(
        current_account,
        payload.purchase_id,
        payload.payment_mode,
        payload.transaction_ref,
        notes=payload.notes
    )
    return LedgerResponse.from_ledger(ledger)

@router.get("", response_model=List[LedgerResponse])
async def list_my_ledgers(
    current_account: Account = Depends(get_current_account),
    db = Depends(get_db)
):
    ledgers = await LedgerService(db).list_ledgers(current_account)
    return [LedgerResponse.from_ledger(ledger) for ledger in ledgers]

@router.get("/{ledger_id}", response_model=LedgerResponse)
async def get_ledger(
    ledger_id: str,
    current_account: Account = Depends(get_current_account),
    db = Depends(get_db)
):
    """Ledger snapshot with payment summary (owner or admin)."""
    ledger = await LedgerService(db).get_ledger(ledger_id, current_account)
    return LedgerResponse.from_ledger(ledger)

@router.post("/{ledger_id}/obligations/{number}/submit", response_model=LedgerResponse)
async def submit_obligation(
    ledger_id: str,
    number: int,
    payload: ObligationSubmit,
    current_account: Account = Depends(get_current_account),
    db = Depends(get_db)
):
    """Submit payment for an installment (paying account only)."""
    ledger = await ApprovalService(db).submit_obligation(
        ledger_id,
        number,
        payload.transaction_ref,
        current_account,
        expected_version=payload.version
    )
    return LedgerResponse.from_ledger(ledger)

@router.post("/{ledger_id}/obligations/{number}/decision", response_model=LedgerResponse)
async def decide_obligation(
    ledger_id: str,
    number: int,
    payload: DecisionRequest,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    """Approve or reject a submitted installment (admin only)."""
    ledger = await ApprovalService(db).decide_obligation(
        ledger_id,
        number,
        payload.decision,
        admin,
        notes=payload.notes,
        expected_version=payload.version
    )
    return LedgerResponse.from_ledger(ledger)

@router.post("/{ledger_id}/decision", response_model=LedgerResponse)
async def decide_payment(
    ledger_id: str,
    payload: DecisionRequest,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    """Approve or reject a full payment (admin only)."""
    ledger = await ApprovalService(db).decide_payment(
        ledger_id,
        payload.decision,
        admin,
        notes=payload.notes,
        expected_version=payload.version
    )
    return LedgerResponse.from_ledger(ledger)

@router.post("/{ledger_id}/complete", response_model=LedgerResponse)
async def mark_completed(
    ledger_id: str,
    current_account: Account = Depends(get_current_account),
    db = Depends(get_db)
):
    ledger = await LedgerService(db).mark_completed(ledger_id, current_account)
    return LedgerResponse.from_ledger(ledger)
