from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship
from database import Base, TENANT_SCHEMA_PREFIX
from models.audit_mixin import AuditMixin
import re

# Physical identifier; PostgreSQL truncates anything past 63 characters
SCHEMA_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,62}$")
# Stored name, leaving room for the prefix and never carrying it itself
TENANT_SCHEMA_NAME_PATTERN = re.compile(r"^(?!tenant_)[a-z][a-z0-9_]{0,55}$")


class Tenant(Base, AuditMixin):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # Stored without the "tenant_" prefix and never changed after onboarding
    schema_name = Column(String(56), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    user_tenants = relationship("UserTenant", back_populates="tenant")

    @property
    def full_schema_name(self) -> str:
        return full_schema_name(self.schema_name)

    @staticmethod
    def validate_schema_name(schema_name: str) -> bool:
        return bool(schema_name) and TENANT_SCHEMA_NAME_PATTERN.match(schema_name) is not None

    def __repr__(self):
        return f"<Tenant(id={self.id}, schema_name={self.schema_name}, is_active={self.is_active})>"


def full_schema_name(schema_name: str) -> str:
    if schema_name.startswith(TENANT_SCHEMA_PREFIX):
        return schema_name
    return f"{TENANT_SCHEMA_PREFIX}{schema_name}"
