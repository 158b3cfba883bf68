"""
Account model - payer identity plus installment eligibility.

The split template is a versioned value with its own audit trail, kept apart
from the ``installments_enabled`` switch so that concurrent edits to one do
not read like edits to the other.

Invariant:
- installments_enabled is False whenever is_suspicious is True
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ConfigDict

from payplan.models.base import MongoModel, PyObjectId, UTCDateTime, _utcnow


class AccountRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class SplitRule(BaseModel):
    percentage: int = Field(..., ge=1, le=100)
    due_days: int = Field(0, ge=0)


class SplitTemplate(BaseModel):
    """Versioned split configuration; an empty rule list means "use the default"."""
    version: int = 0
    rules: List[SplitRule] = []
    updated_by: Optional[PyObjectId] = None
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)


class SettingsChange(BaseModel):
    """One entry in the account's settings audit trail."""
    field: str  # "installments_enabled" | "split_template" | "is_suspicious"
    value: Any
    changed_by: Optional[PyObjectId] = None  # None when the overdue sweep made the change
    changed_at: UTCDateTime = Field(default_factory=_utcnow)
    reason: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)


class Account(MongoModel):
    name: str
    email: str
    role: AccountRole = AccountRole.USER

    is_suspicious: bool = False
    installments_enabled: bool = False
    split_template: SplitTemplate = Field(default_factory=SplitTemplate)
    settings_history: List[SettingsChange] = []

    version: int = 1

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN

    def can_create_installment_plan(self) -> bool:
        return self.installments_enabled and not self.is_suspicious
