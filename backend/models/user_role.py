from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
from models.audit_mixin import TimestampMixin


class UserRole(Base, TimestampMixin):
    """A role held by a user inside one tenant."""
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)

    role = relationship("Role")

    __table_args__ = (
        UniqueConstraint('user_id', 'role_id', 'tenant_id', name='_user_role_tenant_uc'),
    )
