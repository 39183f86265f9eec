from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from models.audit_mixin import Lifecycle
from models.chart_of_accounts import AccountType


class ChartOfAccountsBase(BaseModel):
    account_number: Optional[str] = Field(None, max_length=20)
    account_name: str = Field(..., min_length=1, max_length=255)
    account_type: AccountType
    account_subtype: Optional[str] = None
    account_detail_type: Optional[str] = None
    parent_account_id: Optional[int] = None
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    description: Optional[str] = None
    track_tax: bool = False
    default_tax_id: Optional[int] = None
    bank_account_number: Optional[str] = None
    bank_routing_number: Optional[str] = None

    @field_validator('account_number')
    @classmethod
    def validate_account_number(cls, v):
        if v is not None:
            v = v.strip()
            if not v:
                return None
        return v

    @field_validator('currency_code')
    @classmethod
    def upper_currency(cls, v):
        return v.upper() if v else v


class ChartOfAccountsCreate(ChartOfAccountsBase):
    opening_balance: Decimal = Decimal("0")
    is_active: bool = True


class ChartOfAccountsUpdate(BaseModel):
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    account_type: Optional[AccountType] = None
    account_subtype: Optional[str] = None
    account_detail_type: Optional[str] = None
    parent_account_id: Optional[int] = None
    currency_code: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    track_tax: Optional[bool] = None
    default_tax_id: Optional[int] = None
    bank_account_number: Optional[str] = None
    bank_routing_number: Optional[str] = None


class ChartOfAccounts(BaseModel):
    id: int
    tenant_id: int
    account_number: Optional[str] = None
    account_name: str
    account_type: AccountType
    account_subtype: Optional[str] = None
    account_detail_type: Optional[str] = None
    parent_account_id: Optional[int] = None
    opening_balance: Decimal
    current_balance: Decimal
    currency_code: str
    description: Optional[str] = None
    is_active: bool
    is_system_account: bool
    track_tax: bool
    default_tax_id: Optional[int] = None
    bank_account_number: Optional[str] = None
    bank_routing_number: Optional[str] = None
    bank_account_id: Optional[int] = None
    lifecycle: Lifecycle
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChartOfAccountsNode(ChartOfAccounts):
    children: List[ChartOfAccounts] = []


class LinkBankAccount(BaseModel):
    bank_account_id: int


class ImportField(BaseModel):
    key: str
    label: str
    required: bool


class ImportResult(BaseModel):
    imported: int
    accounts: List[ChartOfAccounts]
