from fastapi import APIRouter, Depends, status

from payplan.core.auth import get_current_account, require_admin
from payplan.db.mongo import get_db
from payplan.models.account import Account
from payplan.models.purchase import Purchase
from payplan.schemas.admin import DeleteResponse
from payplan.schemas.purchase import PurchaseCreate, PurchaseResponse
from payplan.services.purchase_service import PurchaseService

router = APIRouter()

@router.post("", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase(
    payload: PurchaseCreate,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    """Add a service to the catalogue (admin only)."""
    purchase = await PurchaseService(db).create_purchase(Purchase(**payload.model_dump()), admin)
    return PurchaseResponse.from_purchase(purchase)

@router.get("/{purchase_id}", response_model=PurchaseResponse)
async def get_purchase(
    purchase_id: str,
    current_account: Account = Depends(get_current_account),
    db = Depends(get_db)
):
    purchase = await PurchaseService(db).get_purchase(purchase_id)
    return PurchaseResponse.from_purchase(purchase)

@router.delete("/{purchase_id}", response_model=DeleteResponse)
async def delete_purchase(
    purchase_id: str,
    admin: Account = Depends(require_admin),
    db = Depends(get_db)
):
    """Delete a service and every ledger opened for it (admin only)."""
    removed = await PurchaseService(db).delete_purchase(purchase_id, admin)
    return DeleteResponse(deleted=True, ledgers_removed=removed)
