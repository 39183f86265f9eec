from sqlalchemy import Column, Integer, String, Text, Boolean, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from database import TenantBase
from models.audit_mixin import AuditMixin
import enum


class AccountType(str, enum.Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


# Inclusive numeric ranges used when an account number is auto-assigned
ACCOUNT_NUMBER_RANGES = {
    AccountType.ASSET: (1000, 1999),
    AccountType.LIABILITY: (2000, 2999),
    AccountType.EQUITY: (3000, 3999),
    AccountType.REVENUE: (4000, 4999),
    AccountType.EXPENSE: (5000, 5999),
}

# Debits increase these; credits increase everything else
DEBIT_NORMAL_TYPES = (AccountType.ASSET, AccountType.EXPENSE)

DEFAULT_CURRENCY_CODE = "CAD"


class ChartOfAccounts(TenantBase, AuditMixin):
    __tablename__ = "chart_of_accounts"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    account_number = Column(String(20), nullable=True, index=True)
    account_name = Column(String(255), nullable=False)
    account_type = Column(String(20), nullable=False, index=True)
    account_subtype = Column(String(100), nullable=True)
    account_detail_type = Column(String(100), nullable=True)
    parent_account_id = Column(Integer, ForeignKey("chart_of_accounts.id"), nullable=True, index=True)
    opening_balance = Column(Numeric(18, 2), nullable=False, default=0)
    current_balance = Column(Numeric(18, 2), nullable=False, default=0)
    currency_code = Column(String(3), nullable=False, default=DEFAULT_CURRENCY_CODE)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_system_account = Column(Boolean, default=False, nullable=False)
    track_tax = Column(Boolean, default=False, nullable=False)
    default_tax_id = Column(Integer, ForeignKey("taxes.id"), nullable=True)
    bank_account_number = Column(String(50), nullable=True)
    bank_routing_number = Column(String(50), nullable=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=True)

    parent = relationship("ChartOfAccounts", remote_side=[id])
    bank_account = relationship("BankAccount")

    def __repr__(self):
        return f"<ChartOfAccounts(id={self.id}, number={self.account_number}, type={self.account_type})>"
