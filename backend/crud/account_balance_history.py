"""
Account balance history.

Rows are only ever inserted, by the posting path. Reads are by account, by
journal entry, by filter, or "as of" a point in time.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

import pytz
from sqlalchemy.orm import Session

from models.account_balance_history import AccountBalanceHistory, BalanceChangeType
from models.audit_mixin import utc_now
from utils.filters import by_tenant, apply_filters, paginate
from utils.tenancy import TenantContext, with_tenant_schema


def _history(db: Session, ctx: TenantContext):
    return db.query(AccountBalanceHistory).filter(by_tenant(AccountBalanceHistory, ctx.tenant_id))


def _recent_first(query):
    # id breaks ties between rows written in the same instant
    return query.order_by(AccountBalanceHistory.change_date.desc(), AccountBalanceHistory.id.desc())


def _end_of_day(value) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else pytz.utc.localize(value)
    return pytz.utc.localize(datetime.combine(value, time.max))


def record_balance_change(
    ctx: TenantContext,
    account_id: int,
    previous_balance,
    new_balance,
    change_amount,
    change_type: BalanceChangeType,
    journal_entry_id: Optional[int] = None,
    journal_entry_line_id: Optional[int] = None,
    change_date: Optional[datetime] = None,
    description: Optional[str] = None,
    source_module: Optional[str] = None,
    source_id: Optional[int] = None,
    db: Optional[Session] = None,
) -> AccountBalanceHistory:
    def work(db: Session):
        record = AccountBalanceHistory(
            tenant_id=ctx.tenant_id,
            account_id=account_id,
            journal_entry_id=journal_entry_id,
            journal_entry_line_id=journal_entry_line_id,
            previous_balance=Decimal(previous_balance),
            new_balance=Decimal(new_balance),
            change_amount=Decimal(change_amount),
            change_type=BalanceChangeType(change_type).value,
            change_date=change_date or utc_now(),
            description=description,
            source_module=source_module,
            source_id=source_id,
            created_by=ctx.user_id,
        )
        db.add(record)
        db.flush()
        return record

    return with_tenant_schema(ctx.schema_name, work, db)


def get_balance_history(
    ctx: TenantContext,
    account_id: Optional[int] = None,
    journal_entry_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    change_type: Optional[BalanceChangeType] = None,
    page: int = 1,
    limit: int = 20,
    db: Optional[Session] = None,
):
    """Filtered, most-recent-first history. Returns ``(items, total)``."""
    def work(db: Session):
        query = apply_filters(
            _history(db, ctx),
            AccountBalanceHistory.account_id == account_id if account_id is not None else None,
            AccountBalanceHistory.journal_entry_id == journal_entry_id if journal_entry_id is not None else None,
            AccountBalanceHistory.change_date >= pytz.utc.localize(datetime.combine(start_date, time.min)) if start_date else None,
            AccountBalanceHistory.change_date <= _end_of_day(end_date) if end_date else None,
            AccountBalanceHistory.change_type == BalanceChangeType(change_type).value if change_type else None,
        )
        return paginate(_recent_first(query), page, limit)

    return with_tenant_schema(ctx.schema_name, work, db)


def get_balance_history_by_account(ctx: TenantContext, account_id: int, limit: int = 100,
                                   db: Optional[Session] = None) -> List[AccountBalanceHistory]:
    def work(db: Session):
        query = _history(db, ctx).filter(AccountBalanceHistory.account_id == account_id)
        return _recent_first(query).limit(limit).all()

    return with_tenant_schema(ctx.schema_name, work, db)


def get_balance_history_by_journal_entry(ctx: TenantContext, journal_entry_id: int,
                                         db: Optional[Session] = None) -> List[AccountBalanceHistory]:
    def work(db: Session):
        query = _history(db, ctx).filter(AccountBalanceHistory.journal_entry_id == journal_entry_id)
        return _recent_first(query).all()

    return with_tenant_schema(ctx.schema_name, work, db)


def get_account_balance_as_of(ctx: TenantContext, account_id: int, as_of, db: Optional[Session] = None) -> Optional[Decimal]:
    """
    Balance recorded by the latest change at or before ``as_of``.

    A plain date covers the whole day. Returns None when the account has no
    history up to that point.
    """
    def work(db: Session):
        record = _recent_first(
            _history(db, ctx).filter(
                AccountBalanceHistory.account_id == account_id,
                AccountBalanceHistory.change_date <= _end_of_day(as_of)
            )
        ).first()
        return record.new_balance if record is not None else None

    return with_tenant_schema(ctx.schema_name, work, db)
