from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, Numeric
from sqlalchemy.orm import relationship
from database import TenantBase
from models.audit_mixin import AuditMixin
import enum


class JournalEntryStatus(str, enum.Enum):
    DRAFT = "draft"
    POSTED = "posted"
    VOIDED = "voided"


class JournalEntryType(str, enum.Enum):
    STANDARD = "standard"
    ADJUSTING = "adjusting"
    CLOSING = "closing"
    REVERSING = "reversing"


# source_module stamped on entries and history rows produced by this engine
JOURNAL_ENTRIES_SOURCE = "journal_entries"


class JournalEntry(TenantBase, AuditMixin):
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    entry_number = Column(String(50), nullable=True, index=True)
    entry_date = Column(Date, nullable=False)
    entry_type = Column(String(20), nullable=False, default=JournalEntryType.STANDARD.value)
    is_adjusting = Column(Boolean, default=False, nullable=False)
    is_closing = Column(Boolean, default=False, nullable=False)
    is_reversing = Column(Boolean, default=False, nullable=False)
    # On a reversed original this records when the reversal was booked
    reversal_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)
    reference = Column(String(255), nullable=True)
    memo = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=JournalEntryStatus.DRAFT.value, index=True)
    source_module = Column(String(100), nullable=True)
    source_id = Column(Integer, nullable=True)
    total_debit = Column(Numeric(18, 2), nullable=False, default=0)
    total_credit = Column(Numeric(18, 2), nullable=False, default=0)
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    posted_by = Column(String, nullable=True)
    posted_at = Column(DateTime(timezone=True), nullable=True)

    lines = relationship(
        "JournalEntryLine",
        back_populates="journal_entry",
        order_by="JournalEntryLine.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<JournalEntry(id={self.id}, number={self.entry_number}, status={self.status})>"
