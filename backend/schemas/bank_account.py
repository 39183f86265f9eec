from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
from datetime import datetime
from models.audit_mixin import Lifecycle


class BankAccountBase(BaseModel):
    account_name: str = Field(..., min_length=1, max_length=255)
    account_number: Optional[str] = None
    routing_number: Optional[str] = None
    bank_name: Optional[str] = None
    currency_code: str = Field("CAD", min_length=3, max_length=3)
    opening_balance: Decimal = Decimal("0")
    is_active: bool = True


class BankAccountCreate(BankAccountBase):
    pass


class BankAccountUpdate(BaseModel):
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    routing_number: Optional[str] = None
    bank_name: Optional[str] = None
    currency_code: Optional[str] = None
    is_active: Optional[bool] = None


class BankAccount(BankAccountBase):
    id: int
    tenant_id: int
    lifecycle: Lifecycle
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
