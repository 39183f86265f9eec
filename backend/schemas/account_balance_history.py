from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from decimal import Decimal
from models.account_balance_history import BalanceChangeType


class AccountBalanceHistory(BaseModel):
    id: int
    tenant_id: int
    account_id: int
    journal_entry_id: Optional[int] = None
    journal_entry_line_id: Optional[int] = None
    previous_balance: Decimal
    new_balance: Decimal
    change_amount: Decimal
    change_type: BalanceChangeType
    change_date: datetime
    description: Optional[str] = None
    source_module: Optional[str] = None
    source_id: Optional[int] = None
    created_by: Optional[str] = None

    class Config:
        from_attributes = True


class BalanceAsOf(BaseModel):
    account_id: int
    as_of: date
    balance: Optional[Decimal] = None
