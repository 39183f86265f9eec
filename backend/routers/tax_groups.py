from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from crud import tax_group as tax_group_crud
from models.role import RoleName
from schemas.common import Page
from schemas.tax import TaxCalculationResult
from schemas.tax_group import TaxGroup, TaxGroupCreate, TaxGroupUpdate, TaxGroupCalculateRequest
from utils.auth_utils import require_role
from utils.tenancy import TenantContext, get_tenant_context

router = APIRouter(prefix="/tax-groups", tags=["Tax Groups"])

can_write = require_role([RoleName.ADMIN.value, RoleName.ACCOUNTANT.value])


@router.post("/", response_model=TaxGroup, status_code=status.HTTP_201_CREATED)
def create_tax_group(group: TaxGroupCreate, ctx: TenantContext = Depends(get_tenant_context),
                     user: dict = Depends(can_write)):
    """Create a group. The order of ``tax_ids`` is the order taxes are applied in."""
    return tax_group_crud.create_tax_group(ctx, group)


@router.get("/", response_model=Page[TaxGroup])
def list_tax_groups(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    sort: Optional[str] = None,
    order: str = Query("asc", pattern="^(asc|desc)$"),
    ctx: TenantContext = Depends(get_tenant_context),
):
    items, total = tax_group_crud.get_tax_groups(
        ctx, page=page, limit=limit, search_term=search, is_active=is_active, sort=sort, order=order
    )
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/active", response_model=List[TaxGroup])
def list_active_tax_groups(ctx: TenantContext = Depends(get_tenant_context)):
    return tax_group_crud.get_active_tax_groups(ctx)


@router.get("/{group_id}", response_model=TaxGroup)
def get_tax_group(group_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    return tax_group_crud.get_tax_group(ctx, group_id)


@router.post("/{group_id}/calculate", response_model=TaxCalculationResult)
def calculate_tax_with_group(group_id: int, request: TaxGroupCalculateRequest,
                             ctx: TenantContext = Depends(get_tenant_context)):
    return tax_group_crud.calculate_tax_with_group(ctx, group_id, request.amount, request.contact_id)


@router.patch("/{group_id}", response_model=TaxGroup)
def update_tax_group(group_id: int, group: TaxGroupUpdate, ctx: TenantContext = Depends(get_tenant_context),
                     user: dict = Depends(can_write)):
    return tax_group_crud.update_tax_group(ctx, group_id, group)


@router.patch("/{group_id}/enable", response_model=TaxGroup)
def enable_tax_group(group_id: int, ctx: TenantContext = Depends(get_tenant_context),
                     user: dict = Depends(can_write)):
    return tax_group_crud.set_tax_group_active(ctx, group_id, True)


@router.patch("/{group_id}/disable", response_model=TaxGroup)
def disable_tax_group(group_id: int, ctx: TenantContext = Depends(get_tenant_context),
                      user: dict = Depends(can_write)):
    return tax_group_crud.set_tax_group_active(ctx, group_id, False)


@router.delete("/{group_id}", response_model=TaxGroup)
def delete_tax_group(group_id: int, ctx: TenantContext = Depends(get_tenant_context),
                     user: dict = Depends(can_write)):
    return tax_group_crud.delete_tax_group(ctx, group_id)


@router.post("/{group_id}/restore", response_model=TaxGroup)
def restore_tax_group(group_id: int, ctx: TenantContext = Depends(get_tenant_context),
                      user: dict = Depends(can_write)):
    return tax_group_crud.restore_tax_group(ctx, group_id)
