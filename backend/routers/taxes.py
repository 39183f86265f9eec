from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from crud import tax as tax_crud
from models.role import RoleName
from models.tax import TaxType
from schemas.common import Page
from schemas.tax import Tax, TaxCreate, TaxUpdate, TaxStatus, TaxStatistics, TaxCalculateRequest, TaxCalculationResult
from utils.auth_utils import require_role
from utils.tenancy import TenantContext, get_tenant_context

router = APIRouter(prefix="/taxes", tags=["Taxes"])

can_write = require_role([RoleName.ADMIN.value, RoleName.ACCOUNTANT.value])


@router.post("/", response_model=Tax, status_code=status.HTTP_201_CREATED)
def create_tax(tax: TaxCreate, ctx: TenantContext = Depends(get_tenant_context), user: dict = Depends(can_write)):
    return tax_crud.create_tax(ctx, tax)


@router.get("/", response_model=Page[Tax])
def list_taxes(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    type: Optional[TaxType] = None,
    sort: Optional[str] = None,
    order: str = Query("asc", pattern="^(asc|desc)$"),
    ctx: TenantContext = Depends(get_tenant_context),
):
    items, total = tax_crud.get_taxes(
        ctx,
        page=page,
        limit=limit,
        search_term=search,
        is_active=is_active,
        tax_type=type.value if type else None,
        sort=sort,
        order=order,
    )
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/active", response_model=List[Tax])
def list_active_taxes(ctx: TenantContext = Depends(get_tenant_context)):
    return tax_crud.get_active_taxes(ctx)


@router.get("/statistics", response_model=TaxStatistics)
def get_tax_statistics(ctx: TenantContext = Depends(get_tenant_context)):
    return tax_crud.get_tax_statistics(ctx)


@router.post("/calculate", response_model=TaxCalculationResult)
def calculate_tax(request: TaxCalculateRequest, ctx: TenantContext = Depends(get_tenant_context)):
    """Tax an amount with an ad-hoc set of taxes, honouring the contact's exemptions."""
    return tax_crud.calculate_tax(ctx, request.amount, request.tax_ids, request.contact_id)


@router.get("/{tax_id}", response_model=Tax)
def get_tax(tax_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    return tax_crud.get_tax(ctx, tax_id)


@router.get("/{tax_id}/status", response_model=TaxStatus)
def get_tax_status(tax_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    return tax_crud.get_tax_status(ctx, tax_id)


@router.patch("/{tax_id}", response_model=Tax)
def update_tax(tax_id: int, tax: TaxUpdate, ctx: TenantContext = Depends(get_tenant_context),
               user: dict = Depends(can_write)):
    return tax_crud.update_tax(ctx, tax_id, tax)


@router.patch("/{tax_id}/enable", response_model=Tax)
def enable_tax(tax_id: int, ctx: TenantContext = Depends(get_tenant_context), user: dict = Depends(can_write)):
    return tax_crud.set_tax_active(ctx, tax_id, True)


@router.patch("/{tax_id}/disable", response_model=Tax)
def disable_tax(tax_id: int, ctx: TenantContext = Depends(get_tenant_context), user: dict = Depends(can_write)):
    return tax_crud.set_tax_active(ctx, tax_id, False)


@router.delete("/{tax_id}", response_model=Tax)
def delete_tax(tax_id: int, ctx: TenantContext = Depends(get_tenant_context), user: dict = Depends(can_write)):
    return tax_crud.delete_tax(ctx, tax_id)


@router.post("/{tax_id}/restore", response_model=Tax)
def restore_tax(tax_id: int, ctx: TenantContext = Depends(get_tenant_context), user: dict = Depends(can_write)):
    return tax_crud.restore_tax(ctx, tax_id)
