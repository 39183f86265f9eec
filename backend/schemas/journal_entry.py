from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from models.audit_mixin import Lifecycle
from models.journal_entry import JournalEntryStatus, JournalEntryType
from .journal_entry_line import JournalEntryLineCreate, JournalEntryLine


class JournalEntryBase(BaseModel):
    entry_date: date
    entry_number: Optional[str] = Field(None, max_length=50)
    entry_type: JournalEntryType = JournalEntryType.STANDARD
    is_adjusting: bool = False
    is_closing: bool = False
    description: Optional[str] = None
    reference: Optional[str] = None
    memo: Optional[str] = None
    source_module: Optional[str] = None
    source_id: Optional[int] = None


class JournalEntryCreate(JournalEntryBase):
    # Balance rules are enforced by the engine so API and internal callers share them
    lines: List[JournalEntryLineCreate]


class JournalEntryUpdate(BaseModel):
    entry_date: Optional[date] = None
    entry_number: Optional[str] = None
    entry_type: Optional[JournalEntryType] = None
    is_adjusting: Optional[bool] = None
    is_closing: Optional[bool] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    memo: Optional[str] = None
    lines: Optional[List[JournalEntryLineCreate]] = None


class JournalEntryPost(BaseModel):
    # Record the poster as approver as well
    approve: bool = False


class JournalEntryReverse(BaseModel):
    reversal_date: date


class JournalEntryDuplicate(BaseModel):
    entry_date: Optional[date] = None
    entry_number: Optional[str] = None


class JournalEntry(JournalEntryBase):
    id: int
    tenant_id: int
    status: JournalEntryStatus
    is_reversing: bool
    reversal_date: Optional[date] = None
    total_debit: Decimal
    total_credit: Decimal
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    posted_by: Optional[str] = None
    posted_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    lifecycle: Lifecycle
    lines: List[JournalEntryLine] = []

    class Config:
        from_attributes = True
