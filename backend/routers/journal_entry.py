from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from crud import journal_entry as journal_entry_crud
from models.journal_entry import JournalEntryStatus, JournalEntryType
from models.role import RoleName
from schemas.common import Page
from schemas.journal_entry import (
    JournalEntry,
    JournalEntryCreate,
    JournalEntryUpdate,
    JournalEntryPost,
    JournalEntryReverse,
    JournalEntryDuplicate,
)
from utils.auth_utils import require_role
from utils.tenancy import TenantContext, get_tenant_context

router = APIRouter(prefix="/journal-entries", tags=["Journal Entries"])

can_write = require_role([RoleName.ADMIN.value, RoleName.ACCOUNTANT.value])
can_approve = require_role([RoleName.ADMIN.value])


@router.post("/", response_model=JournalEntry, status_code=status.HTTP_201_CREATED)
def create_journal_entry(
    entry: JournalEntryCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    """Create a draft entry. Lines must balance before anything is stored."""
    return journal_entry_crud.create_journal_entry(ctx, entry)


@router.get("/", response_model=Page[JournalEntry])
def list_journal_entries(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    entry_status: Optional[JournalEntryStatus] = Query(None, alias="status"),
    entry_type: Optional[JournalEntryType] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    source_module: Optional[str] = None,
    sort: Optional[str] = None,
    order: str = Query("desc", pattern="^(asc|desc)$"),
    ctx: TenantContext = Depends(get_tenant_context),
):
    items, total = journal_entry_crud.get_journal_entries(
        ctx,
        page=page,
        limit=limit,
        search_term=search,
        status=entry_status.value if entry_status else None,
        entry_type=entry_type.value if entry_type else None,
        start_date=start_date,
        end_date=end_date,
        source_module=source_module,
        sort=sort,
        order=order,
    )
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/{entry_id}", response_model=JournalEntry)
def get_journal_entry(entry_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    return journal_entry_crud.get_journal_entry(ctx, entry_id)


@router.patch("/{entry_id}", response_model=JournalEntry)
def update_journal_entry(
    entry_id: int,
    entry: JournalEntryUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    """Edit a draft. Sending ``lines`` replaces all of them."""
    return journal_entry_crud.update_journal_entry(ctx, entry_id, entry)


@router.post("/{entry_id}/post", response_model=JournalEntry)
def post_journal_entry(
    entry_id: int,
    body: Optional[JournalEntryPost] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    """Post a draft, updating account balances and balance history."""
    approved_by = ctx.user_id if body is not None and body.approve else None
    return journal_entry_crud.post_journal_entry(ctx, entry_id, approved_by=approved_by)


@router.post("/{entry_id}/void", response_model=JournalEntry)
def void_journal_entry(
    entry_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_approve),
):
    return journal_entry_crud.void_journal_entry(ctx, entry_id)


@router.post("/{entry_id}/reverse", response_model=JournalEntry, status_code=status.HTTP_201_CREATED)
def reverse_journal_entry(
    entry_id: int,
    body: JournalEntryReverse,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_approve),
):
    """Create and post the reversing entry of a posted entry."""
    return journal_entry_crud.reverse_journal_entry(ctx, entry_id, body.reversal_date)


@router.post("/{entry_id}/duplicate", response_model=JournalEntry, status_code=status.HTTP_201_CREATED)
def duplicate_journal_entry(
    entry_id: int,
    body: Optional[JournalEntryDuplicate] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    body = body or JournalEntryDuplicate()
    return journal_entry_crud.duplicate_journal_entry(
        ctx, entry_id, entry_date=body.entry_date, entry_number=body.entry_number
    )


@router.delete("/{entry_id}", response_model=JournalEntry)
def delete_journal_entry(
    entry_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    return journal_entry_crud.delete_journal_entry(ctx, entry_id)


@router.post("/{entry_id}/restore", response_model=JournalEntry)
def restore_journal_entry(
    entry_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    user: dict = Depends(can_write),
):
    return journal_entry_crud.restore_journal_entry(ctx, entry_id)
