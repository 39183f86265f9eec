from sqlalchemy import Column, Integer, String, Text, Boolean, Numeric
from database import TenantBase
from models.audit_mixin import AuditMixin
import enum


class TaxType(str, enum.Enum):
    NORMAL = "normal"
    COMPOUND = "compound"
    WITHHOLDING = "withholding"


class Tax(TenantBase, AuditMixin):
    __tablename__ = "taxes"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default=TaxType.NORMAL.value)
    # Percentage, 0-100
    rate = Column(Numeric(7, 4), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
