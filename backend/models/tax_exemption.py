from sqlalchemy import Column, Integer, String, Text, Boolean, Date, ForeignKey
from sqlalchemy.orm import relationship
from database import TenantBase
from models.audit_mixin import AuditMixin
import enum


class ExemptionType(str, enum.Enum):
    RESALE = "resale"
    NON_PROFIT = "non_profit"
    GOVERNMENT = "government"
    OTHER = "other"


class TaxExemption(TenantBase, AuditMixin):
    __tablename__ = "tax_exemptions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    contact_id = Column(Integer, nullable=False, index=True)
    # NULL exempts the contact from every tax
    tax_id = Column(Integer, ForeignKey("taxes.id"), nullable=True)
    exemption_type = Column(String(20), nullable=False)
    certificate_number = Column(String(100), nullable=True)
    certificate_expiry = Column(Date, nullable=True)
    reason = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    tax = relationship("Tax")
