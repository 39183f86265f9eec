from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from crud import tax_exemption as tax_exemption_crud
from models.role import RoleName
from models.tax_exemption import ExemptionType
from schemas.common import Page
from schemas.tax_exemption import TaxExemption, TaxExemptionCreate, TaxExemptionUpdate
from utils.auth_utils import require_role
from utils.tenancy import TenantContext, get_tenant_context

router = APIRouter(prefix="/tax-exemptions", tags=["Tax Exemptions"])

can_write = require_role([RoleName.ADMIN.value, RoleName.ACCOUNTANT.value])


@router.post("/", response_model=TaxExemption, status_code=status.HTTP_201_CREATED)
def create_tax_exemption(exemption: TaxExemptionCreate, ctx: TenantContext = Depends(get_tenant_context),
                         user: dict = Depends(can_write)):
    """Exempt a contact from one tax, or from every tax when ``tax_id`` is null."""
    return tax_exemption_crud.create_tax_exemption(ctx, exemption)


@router.get("/", response_model=Page[TaxExemption])
def list_tax_exemptions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    contact_id: Optional[int] = None,
    tax_id: Optional[int] = None,
    exemption_type: Optional[ExemptionType] = None,
    expired: Optional[bool] = None,
    sort: Optional[str] = None,
    order: str = Query("asc", pattern="^(asc|desc)$"),
    ctx: TenantContext = Depends(get_tenant_context),
):
    items, total = tax_exemption_crud.get_tax_exemptions(
        ctx,
        page=page,
        limit=limit,
        search_term=search,
        is_active=is_active,
        contact_id=contact_id,
        tax_id=tax_id,
        exemption_type=exemption_type.value if exemption_type else None,
        expired=expired,
        sort=sort,
        order=order,
    )
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/contact/{contact_id}", response_model=List[TaxExemption])
def get_contact_exemptions(contact_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    """Exemptions currently in force for the contact."""
    return tax_exemption_crud.get_contact_exemptions(ctx, contact_id)


@router.get("/{exemption_id}", response_model=TaxExemption)
def get_tax_exemption(exemption_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    return tax_exemption_crud.get_tax_exemption(ctx, exemption_id)


@router.patch("/{exemption_id}", response_model=TaxExemption)
def update_tax_exemption(exemption_id: int, exemption: TaxExemptionUpdate,
                         ctx: TenantContext = Depends(get_tenant_context), user: dict = Depends(can_write)):
    return tax_exemption_crud.update_tax_exemption(ctx, exemption_id, exemption)


@router.patch("/{exemption_id}/enable", response_model=TaxExemption)
def enable_tax_exemption(exemption_id: int, ctx: TenantContext = Depends(get_tenant_context),
                         user: dict = Depends(can_write)):
    return tax_exemption_crud.set_tax_exemption_active(ctx, exemption_id, True)


@router.patch("/{exemption_id}/disable", response_model=TaxExemption)
def disable_tax_exemption(exemption_id: int, ctx: TenantContext = Depends(get_tenant_context),
                          user: dict = Depends(can_write)):
    return tax_exemption_crud.set_tax_exemption_active(ctx, exemption_id, False)


@router.delete("/{exemption_id}", response_model=TaxExemption)
def delete_tax_exemption(exemption_id: int, ctx: TenantContext = Depends(get_tenant_context),
                         user: dict = Depends(can_write)):
    return tax_exemption_crud.delete_tax_exemption(ctx, exemption_id)


@router.post("/{exemption_id}/restore", response_model=TaxExemption)
def restore_tax_exemption(exemption_id: int, ctx: TenantContext = Depends(get_tenant_context),
                          user: dict = Depends(can_write)):
    return tax_exemption_crud.restore_tax_exemption(ctx, exemption_id)
