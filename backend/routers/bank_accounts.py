from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from crud import bank_account as bank_account_crud
from models.role import RoleName
from schemas.bank_account import BankAccount, BankAccountCreate, BankAccountUpdate
from schemas.common import Page
from utils.auth_utils import require_role
from utils.tenancy import TenantContext, get_tenant_context

router = APIRouter(prefix="/bank-accounts", tags=["Bank Accounts"])

can_write = require_role([RoleName.ADMIN.value, RoleName.ACCOUNTANT.value])


@router.post("/", response_model=BankAccount, status_code=status.HTTP_201_CREATED)
def create_bank_account(bank_account: BankAccountCreate, ctx: TenantContext = Depends(get_tenant_context),
                        user: dict = Depends(can_write)):
    return bank_account_crud.create_bank_account(ctx, bank_account)


@router.get("/", response_model=Page[BankAccount])
def list_bank_accounts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    ctx: TenantContext = Depends(get_tenant_context),
):
    items, total = bank_account_crud.get_bank_accounts(ctx, page=page, limit=limit, search_term=search, is_active=is_active)
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/{bank_account_id}", response_model=BankAccount)
def get_bank_account(bank_account_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    return bank_account_crud.get_bank_account(ctx, bank_account_id)


@router.patch("/{bank_account_id}", response_model=BankAccount)
def update_bank_account(bank_account_id: int, bank_account: BankAccountUpdate,
                        ctx: TenantContext = Depends(get_tenant_context), user: dict = Depends(can_write)):
    return bank_account_crud.update_bank_account(ctx, bank_account_id, bank_account)


@router.delete("/{bank_account_id}", response_model=BankAccount)
def delete_bank_account(bank_account_id: int, ctx: TenantContext = Depends(get_tenant_context),
                        user: dict = Depends(can_write)):
    return bank_account_crud.delete_bank_account(ctx, bank_account_id)


@router.post("/{bank_account_id}/restore", response_model=BankAccount)
def restore_bank_account(bank_account_id: int, ctx: TenantContext = Depends(get_tenant_context),
                         user: dict = Depends(can_write)):
    return bank_account_crud.restore_bank_account(ctx, bank_account_id)
