import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import StreamingResponse

from crud import chart_of_accounts as coa_crud
from models.chart_of_accounts import AccountType
from models.role import RoleName
from schemas.chart_of_accounts import (
    ChartOfAccounts,
    ChartOfAccountsCreate,
    ChartOfAccountsUpdate,
    ChartOfAccountsNode,
    ImportField,
    ImportResult,
    LinkBankAccount,
)
from schemas.common import Page
from utils.auth_utils import require_role
from utils.coa_sample import IMPORT_FIELDS, SAMPLE_FILENAME, XLSX_CONTENT_TYPE, build_sample_workbook, read_import_rows
from utils.errors import BadRequest, ErrorMessages
from utils.tenancy import TenantContext, get_tenant_context

router = APIRouter(prefix="/chart-of-accounts", tags=["Chart of Accounts"])
logger = logging.getLogger(__name__)

can_write = require_role([RoleName.ADMIN.value, RoleName.ACCOUNTANT.value])


@router.post("/", response_model=ChartOfAccounts, status_code=status.HTTP_201_CREATED)
def create_account(
    account: ChartOfAccountsCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    """Create an account. The number is generated from the type's range when omitted."""
    return coa_crud.create_account(ctx, account)


@router.get("/", response_model=Page[ChartOfAccounts])
def list_accounts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    account_type: Optional[AccountType] = None,
    account_subtype: Optional[str] = None,
    parent_account_id: Optional[int] = None,
    top_level_only: bool = False,
    sort: Optional[str] = None,
    order: str = Query("asc", pattern="^(asc|desc)$"),
    ctx: TenantContext = Depends(get_tenant_context),
):
    items, total = coa_crud.get_accounts(
        ctx,
        page=page,
        limit=limit,
        search_term=search,
        is_active=is_active,
        account_type=account_type.value if account_type else None,
        account_subtype=account_subtype,
        parent_account_id=parent_account_id,
        top_level_only=top_level_only,
        sort=sort,
        order=order,
    )
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/hierarchy", response_model=List[ChartOfAccountsNode])
def get_hierarchy(ctx: TenantContext = Depends(get_tenant_context)):
    """Top-level accounts with their direct children."""
    return coa_crud.get_account_hierarchy(ctx)


@router.get("/generate-number")
def generate_account_number(account_type: AccountType, ctx: TenantContext = Depends(get_tenant_context)):
    return {"account_type": account_type.value, "account_number": coa_crud.generate_account_number(ctx, account_type)}


@router.get("/sample")
def download_sample_file():
    """Excel template for the import endpoint."""
    return StreamingResponse(
        build_sample_workbook(),
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f"attachment; filename={SAMPLE_FILENAME}"},
    )


@router.get("/import-fields", response_model=List[ImportField])
def get_import_fields():
    return IMPORT_FIELDS


@router.post("/import", response_model=ImportResult, status_code=status.HTTP_201_CREATED)
def import_accounts(
    file: UploadFile = File(...),
    mapping: Optional[str] = Form(None),
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    """
    Import accounts from an Excel file.

    ``mapping`` is an optional JSON object of field key to column header.
    The whole file is imported in one transaction or not at all.
    """
    try:
        column_mapping = json.loads(mapping) if mapping else None
        rows = read_import_rows(file.file.read(), column_mapping)
    except ValueError as e:
        logger.warning(f"Rejected chart of accounts import for tenant {ctx.tenant_id}: {e}")
        raise BadRequest(ErrorMessages.CHART_OF_ACCOUNT_IMPORT_INVALID, str(e))

    accounts = coa_crud.import_accounts(ctx, rows)
    return {"imported": len(accounts), "accounts": accounts}


@router.get("/{account_id}", response_model=ChartOfAccounts)
def get_account(account_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    return coa_crud.get_account(ctx, account_id)


@router.patch("/{account_id}", response_model=ChartOfAccounts)
def update_account(
    account_id: int,
    account: ChartOfAccountsUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    return coa_crud.update_account(ctx, account_id, account)


@router.delete("/{account_id}", response_model=ChartOfAccounts)
def delete_account(
    account_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    return coa_crud.delete_account(ctx, account_id)


@router.post("/{account_id}/restore", response_model=ChartOfAccounts)
def restore_account(
    account_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    return coa_crud.restore_account(ctx, account_id)


@router.patch("/{account_id}/enable", response_model=ChartOfAccounts)
def enable_account(
    account_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    return coa_crud.set_account_active(ctx, account_id, True)


@router.patch("/{account_id}/disable", response_model=ChartOfAccounts)
def disable_account(
    account_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    return coa_crud.set_account_active(ctx, account_id, False)


@router.post("/{account_id}/link-bank-account", response_model=ChartOfAccounts)
def link_bank_account(
    account_id: int,
    link: LinkBankAccount,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    return coa_crud.link_bank_account(ctx, account_id, link.bank_account_id)
