from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from models.audit_mixin import Lifecycle
from models.tax_exemption import ExemptionType


class TaxExemptionBase(BaseModel):
    contact_id: int
    tax_id: Optional[int] = None
    exemption_type: ExemptionType
    certificate_number: Optional[str] = None
    certificate_expiry: Optional[date] = None
    reason: Optional[str] = None
    is_active: bool = True


class TaxExemptionCreate(TaxExemptionBase):
    pass


class TaxExemptionUpdate(BaseModel):
    tax_id: Optional[int] = None
    exemption_type: Optional[ExemptionType] = None
    certificate_number: Optional[str] = None
    certificate_expiry: Optional[date] = None
    reason: Optional[str] = None
    is_active: Optional[bool] = None


class TaxExemption(TaxExemptionBase):
    id: int
    tenant_id: int
    lifecycle: Lifecycle
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
