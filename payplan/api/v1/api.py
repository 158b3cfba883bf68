from fastapi import APIRouter
from payplan.api.v1.endpoints import auth, purchases, ledgers, admin

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(purchases.router, prefix="/purchases", tags=["purchases"])
api_router.include_router(ledgers.router, prefix="/ledgers", tags=["ledgers"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
