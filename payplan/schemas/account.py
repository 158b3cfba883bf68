from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from payplan.models.account import Account


class AccountCreate(BaseModel):
    """Signup request."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


class InstallmentToggle(BaseModel):
    enabled: bool
    version: Optional[int] = None


class SplitTemplateUpdate(BaseModel):
    """Percentages in order; due_days defaults to 0, 30, 60, ..."""
    splits: List[int]
    due_days: Optional[List[int]] = None
    version: Optional[int] = None


class SuspicionUpdate(BaseModel):
    is_suspicious: bool
    reason: str = Field("", max_length=500)
    version: Optional[int] = None


class SplitRuleResponse(BaseModel):
    percentage: int
    due_days: int


class AccountResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    is_suspicious: bool
    installments_enabled: bool
    split_template: List[SplitRuleResponse]
    split_template_version: int
    settings_updated_by: Optional[str] = None
    settings_updated_at: Optional[datetime] = None
    version: int

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        template = account.split_template
        return cls(
            id=str(account.id),
            name=account.name,
            email=account.email,
            role=account.role,
            is_suspicious=account.is_suspicious,
            installments_enabled=account.installments_enabled,
            split_template=[
                SplitRuleResponse(percentage=r.percentage, due_days=r.due_days)
                for r in template.rules
            ],
            split_template_version=template.version,
            settings_updated_by=str(template.updated_by) if template.updated_by else None,
            settings_updated_at=template.updated_at,
            version=account.version
        )
