from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
from models.audit_mixin import TimestampMixin


class UserTenant(Base, TimestampMixin):
    __tablename__ = "user_tenants"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)

    tenant = relationship("Tenant", back_populates="user_tenants")

    __table_args__ = (
        UniqueConstraint('user_id', 'tenant_id', name='_user_tenant_uc'),
    )
