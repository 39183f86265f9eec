from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from decimal import Decimal
from models.audit_mixin import Lifecycle
from models.tax import TaxType


class TaxBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: TaxType = TaxType.NORMAL
    rate: Decimal = Field(..., ge=0, le=100)
    description: Optional[str] = None
    is_active: bool = True


class TaxCreate(TaxBase):
    pass


class TaxUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[TaxType] = None
    rate: Optional[Decimal] = Field(None, ge=0, le=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class Tax(TaxBase):
    id: int
    tenant_id: int
    lifecycle: Lifecycle
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaxStatus(BaseModel):
    id: int
    name: str
    type: TaxType
    rate: Decimal
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaxStatistics(BaseModel):
    total: int
    active: int
    inactive: int
    by_type: Dict[str, int]
    average_rate: Decimal
    recent_taxes: List[TaxStatus]


class TaxCalculateRequest(BaseModel):
    amount: Decimal
    tax_ids: List[int] = Field(..., min_length=1)
    contact_id: Optional[int] = None


class TaxBreakdownItem(BaseModel):
    tax_id: int
    tax_name: str
    tax_type: TaxType
    tax_rate: Decimal
    tax_amount: Decimal
    is_exempt: bool = False


class TaxCalculationResult(BaseModel):
    base_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    effective_rate: Decimal
    tax_breakdown: List[TaxBreakdownItem] = []
