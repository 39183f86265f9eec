from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey
from database import TenantBase
from models.audit_mixin import TimestampMixin, utc_now
import enum


class BalanceChangeType(str, enum.Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class AccountBalanceHistory(TenantBase, TimestampMixin):
    """Append-only log of account balance changes. Rows are never updated or deleted."""
    __tablename__ = "account_balance_history"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    account_id = Column(Integer, ForeignKey("chart_of_accounts.id"), nullable=False, index=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True, index=True)
    journal_entry_line_id = Column(Integer, ForeignKey("journal_entry_lines.id"), nullable=True)
    previous_balance = Column(Numeric(18, 2), nullable=False)
    new_balance = Column(Numeric(18, 2), nullable=False)
    change_amount = Column(Numeric(18, 2), nullable=False)
    change_type = Column(String(10), nullable=False)
    change_date = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    description = Column(Text, nullable=True)
    source_module = Column(String(100), nullable=True)
    source_id = Column(Integer, nullable=True)
