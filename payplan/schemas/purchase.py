from datetime import datetime

from pydantic import BaseModel, Field

from payplan.models.purchase import Purchase


class PurchaseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    price_cents: int = Field(..., ge=0)
    duration: str = Field("30 days", min_length=1, max_length=50)
    is_active: bool = True


class PurchaseResponse(BaseModel):
    id: str
    name: str
    description: str
    price_cents: int
    duration: str
    is_active: bool
    created_at: datetime

    @classmethod
    def from_purchase(cls, purchase: Purchase) -> "PurchaseResponse":
        return cls(
            id=str(purchase.id),
            name=purchase.name,
            description=purchase.description,
            price_cents=purchase.price_cents,
            duration=purchase.duration,
            is_active=purchase.is_active,
            created_at=purchase.created_at
        )
