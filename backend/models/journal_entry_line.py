from sqlalchemy import Column, Integer, Text, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from database import TenantBase
from models.audit_mixin import AuditMixin


class JournalEntryLine(TenantBase, AuditMixin):
    __tablename__ = "journal_entry_lines"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("chart_of_accounts.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)
    debit = Column(Numeric(18, 2), CheckConstraint('debit >= 0'), nullable=False, default=0)
    credit = Column(Numeric(18, 2), CheckConstraint('credit >= 0'), nullable=False, default=0)
    description = Column(Text, nullable=True)
    memo = Column(Text, nullable=True)
    contact_id = Column(Integer, nullable=True)

    journal_entry = relationship("JournalEntry", back_populates="lines")
    account = relationship("ChartOfAccounts")

    __table_args__ = (
        CheckConstraint(
            '(debit > 0 AND credit = 0) OR (debit = 0 AND credit > 0)',
            name='check_debit_or_credit_exclusive'
        ),
    )
