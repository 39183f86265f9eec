from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime
from models.audit_mixin import Lifecycle
from models.tenant import Tenant as TenantModel


class TenantBase(BaseModel):
    name: str
    schema_name: str

    @field_validator('schema_name')
    @classmethod
    def validate_schema_name(cls, v):
        v = v.strip().lower()
        if not TenantModel.validate_schema_name(v):
            raise ValueError("schema_name must start with a letter, contain only lowercase letters, digits and underscores, "
                             "not start with \"tenant_\" and be at most 56 characters")
        return v


class TenantOnboard(TenantBase):
    pass


class Tenant(BaseModel):
    id: int
    name: str
    schema_name: str
    is_active: bool
    lifecycle: Lifecycle
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
