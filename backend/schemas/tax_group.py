from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from models.audit_mixin import Lifecycle
from .tax import Tax


class TaxGroupBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True


class TaxGroupCreate(TaxGroupBase):
    # Order of the list is the compounding order
    tax_ids: List[int] = Field(..., min_length=1)


class TaxGroupUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    tax_ids: Optional[List[int]] = None


class TaxGroup(TaxGroupBase):
    id: int
    tenant_id: int
    lifecycle: Lifecycle
    taxes: List[Tax] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaxGroupCalculateRequest(BaseModel):
    amount: Decimal
    contact_id: Optional[int] = None
