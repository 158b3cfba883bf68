from pydantic import Field

from payplan.models.base import MongoModel


class Purchase(MongoModel):
    """A service offered for sale."""
    name: str
    description: str = ""
    price_cents: int = Field(..., ge=0)  # Integer cents
    duration: str = "30 days"  # e.g. "3 months", "1 year", "45 days"
    is_active: bool = True
