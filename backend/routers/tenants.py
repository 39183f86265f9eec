from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from crud import tenant as tenant_crud
from database import get_db
from models.role import RoleName
from schemas.common import Page
from schemas.tenant import Tenant, TenantOnboard
from utils.auth_utils import get_current_user, get_user_identifier, require_role

router = APIRouter(prefix="/tenants", tags=["Tenants"])

superadmin_only = require_role([RoleName.SUPERADMIN.value])


@router.post("/", response_model=Tenant, status_code=status.HTTP_201_CREATED)
def onboard_tenant(
    tenant: TenantOnboard,
    db: Session = Depends(get_db),
    user: dict = Depends(superadmin_only),
):
    """Register a tenant, bind every superadmin to it and provision its schema."""
    return tenant_crud.onboard_tenant(db, tenant, created_by=get_user_identifier(user))


@router.get("/", response_model=Page[Tenant])
def list_tenants(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    user: dict = Depends(superadmin_only),
):
    items, total = tenant_crud.get_tenants(db, page=page, limit=limit, search_term=search, is_active=is_active)
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/mine", response_model=List[Tenant])
def list_my_tenants(db: Session = Depends(get_db), user: dict = Depends(get_current_user)):
    """Tenants the caller is a member of, primary first."""
    return tenant_crud.get_user_tenants(db, get_user_identifier(user))


@router.get("/{tenant_id}", response_model=Tenant)
def get_tenant(tenant_id: int, db: Session = Depends(get_db), user: dict = Depends(superadmin_only)):
    return tenant_crud.get_tenant(db, tenant_id)


@router.delete("/{tenant_id}", response_model=Tenant)
def delete_tenant(tenant_id: int, db: Session = Depends(get_db), user: dict = Depends(superadmin_only)):
    return tenant_crud.delete_tenant(db, tenant_id, get_user_identifier(user))


@router.post("/{tenant_id}/restore", response_model=Tenant)
def restore_tenant(tenant_id: int, db: Session = Depends(get_db), user: dict = Depends(superadmin_only)):
    return tenant_crud.restore_tenant(db, tenant_id, get_user_identifier(user))
