from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from crud import account_balance_history as balance_history_crud
from crud import chart_of_accounts as coa_crud
from models.account_balance_history import BalanceChangeType
from schemas.account_balance_history import AccountBalanceHistory, BalanceAsOf
from schemas.common import Page
from utils.tenancy import TenantContext, get_tenant_context

router = APIRouter(prefix="/balance-history", tags=["Balance History"])


@router.get("/", response_model=Page[AccountBalanceHistory])
def list_balance_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    account_id: Optional[int] = None,
    journal_entry_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    change_type: Optional[BalanceChangeType] = None,
    ctx: TenantContext = Depends(get_tenant_context),
):
    items, total = balance_history_crud.get_balance_history(
        ctx,
        account_id=account_id,
        journal_entry_id=journal_entry_id,
        start_date=start_date,
        end_date=end_date,
        change_type=change_type,
        page=page,
        limit=limit,
    )
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/account/{account_id}", response_model=List[AccountBalanceHistory])
def get_account_history(
    account_id: int,
    limit: int = Query(100, ge=1, le=1000),
    ctx: TenantContext = Depends(get_tenant_context),
):
    """Most recent changes to one account."""
    coa_crud.get_account(ctx, account_id)
    return balance_history_crud.get_balance_history_by_account(ctx, account_id, limit=limit)


@router.get("/account/{account_id}/as-of", response_model=BalanceAsOf)
def get_balance_as_of(account_id: int, as_of: date, ctx: TenantContext = Depends(get_tenant_context)):
    """Balance at the end of ``as_of``; null when the account had no changes by then."""
    coa_crud.get_account(ctx, account_id)
    balance = balance_history_crud.get_account_balance_as_of(ctx, account_id, as_of)
    return {"account_id": account_id, "as_of": as_of, "balance": balance}


@router.get("/journal-entry/{journal_entry_id}", response_model=List[AccountBalanceHistory])
def get_journal_entry_history(journal_entry_id: int, ctx: TenantContext = Depends(get_tenant_context)):
    return balance_history_crud.get_balance_history_by_journal_entry(ctx, journal_entry_id)
