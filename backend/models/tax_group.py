from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database import TenantBase
from models.audit_mixin import AuditMixin, TimestampMixin


class TaxGroup(TenantBase, AuditMixin):
    __tablename__ = "tax_groups"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # order_index decides the compounding sequence
    group_taxes = relationship(
        "TaxGroupTax",
        back_populates="tax_group",
        order_by="TaxGroupTax.order_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def taxes(self):
        return [group_tax.tax for group_tax in self.group_taxes]


class TaxGroupTax(TenantBase, TimestampMixin):
    __tablename__ = "tax_group_taxes"

    id = Column(Integer, primary_key=True, index=True)
    tax_group_id = Column(Integer, ForeignKey("tax_groups.id"), nullable=False, index=True)
    tax_id = Column(Integer, ForeignKey("taxes.id"), nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    tax_group = relationship("TaxGroup", back_populates="group_taxes")
    tax = relationship("Tax", lazy="joined")

    __table_args__ = (
        UniqueConstraint('tax_group_id', 'tax_id', name='_tax_group_tax_uc'),
    )
