from fastapi import APIRouter, HTTPException, status, Depends

from payplan.core.auth import create_access_token, get_current_account
from payplan.db.mongo import get_db
from payplan.models.account import Account
from payplan.repositories.account_repo import AccountRepository
from payplan.schemas.account import AccountCreate, AccountResponse
from payplan.services.account_service import AccountService

router = APIRouter()

@router.post("/signup", response_model=dict, status_code=status.HTTP_201_CREATED)
async def signup(account_data: AccountCreate, db = Depends(get_db)):
    """Create a new account and return a bearer token."""
    existing = await AccountRepository(db).get_account_by_email(account_data.email)
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    account = await AccountService(db).register(account_data.name, account_data.email)

    return {
        "access_token": create_access_token(str(account.id)),
        "token_type": "bearer",
        "account": AccountResponse.from_account(account).model_dump(mode="json")
    }

@router.get("/me", response_model=AccountResponse)
async def get_me(current_account: Account = Depends(get_current_account)):
    """Get current account details."""
    return AccountResponse.from_account(current_account)
