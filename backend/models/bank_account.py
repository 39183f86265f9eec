from sqlalchemy import Column, Integer, String, Boolean, Numeric
from database import TenantBase
from models.audit_mixin import AuditMixin


class BankAccount(TenantBase, AuditMixin):
    """A real-world bank account that a chart account can be linked to."""
    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    account_name = Column(String(255), nullable=False)
    account_number = Column(String(50), nullable=True)
    routing_number = Column(String(50), nullable=True)
    bank_name = Column(String(255), nullable=True)
    currency_code = Column(String(3), nullable=False, default="CAD")
    opening_balance = Column(Numeric(18, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
