from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional


class JournalEntryLineBase(BaseModel):
    account_id: int
    debit: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    credit: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    description: Optional[str] = None
    memo: Optional[str] = None
    contact_id: Optional[int] = None


class JournalEntryLineCreate(JournalEntryLineBase):
    line_number: Optional[int] = None


class JournalEntryLine(JournalEntryLineBase):
    id: int
    journal_entry_id: int
    line_number: int

    class Config:
        from_attributes = True
