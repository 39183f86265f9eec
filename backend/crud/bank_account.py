import logging
from typing import Optional

from sqlalchemy.orm import Session

from models.bank_account import BankAccount
from schemas.bank_account import BankAccountCreate, BankAccountUpdate
from utils.errors import NotFound, ErrorMessages
from utils.filters import by_tenant, not_deleted, only_deleted, search, apply_filters, paginate
from utils.tenancy import TenantContext, with_tenant_schema

logger = logging.getLogger(__name__)


def _get(db: Session, ctx: TenantContext, bank_account_id: int) -> BankAccount:
    bank_account = db.query(BankAccount).filter(
        BankAccount.id == bank_account_id,
        by_tenant(BankAccount, ctx.tenant_id),
        not_deleted(BankAccount)
    ).first()
    if bank_account is None:
        raise NotFound(ErrorMessages.ACCOUNT_NOT_FOUND)
    return bank_account


def create_bank_account(ctx: TenantContext, bank_account: BankAccountCreate, db: Optional[Session] = None) -> BankAccount:
    def work(db: Session):
        db_bank_account = BankAccount(**bank_account.model_dump(), tenant_id=ctx.tenant_id, created_by=ctx.user_id)
        db.add(db_bank_account)
        db.flush()
        logger.info(f"Bank account '{db_bank_account.account_name}' created by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_bank_account

    return with_tenant_schema(ctx.schema_name, work, db)


def get_bank_account(ctx: TenantContext, bank_account_id: int, db: Optional[Session] = None) -> BankAccount:
    return with_tenant_schema(ctx.schema_name, lambda db: _get(db, ctx, bank_account_id), db)


def get_bank_accounts(ctx: TenantContext, page: int = 1, limit: int = 20, search_term: Optional[str] = None,
                      is_active: Optional[bool] = None, db: Optional[Session] = None):
    def work(db: Session):
        query = apply_filters(
            db.query(BankAccount).filter(by_tenant(BankAccount, ctx.tenant_id), not_deleted(BankAccount)),
            search(search_term, BankAccount.account_name, BankAccount.account_number, BankAccount.bank_name),
            BankAccount.is_active.is_(is_active) if is_active is not None else None,
        )
        return paginate(query.order_by(BankAccount.account_name, BankAccount.id), page, limit)

    return with_tenant_schema(ctx.schema_name, work, db)


def update_bank_account(ctx: TenantContext, bank_account_id: int, update: BankAccountUpdate, db: Optional[Session] = None) -> BankAccount:
    def work(db: Session):
        db_bank_account = _get(db, ctx, bank_account_id)
        for key, value in update.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(db_bank_account, key, value)
        db_bank_account.updated_by = ctx.user_id
        db.flush()
        return db_bank_account

    return with_tenant_schema(ctx.schema_name, work, db)


def delete_bank_account(ctx: TenantContext, bank_account_id: int, db: Optional[Session] = None) -> BankAccount:
    def work(db: Session):
        db_bank_account = _get(db, ctx, bank_account_id)
        db_bank_account.mark_deleted(ctx.user_id)
        db.flush()
        logger.info(f"Bank account {db_bank_account.id} deleted by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_bank_account

    return with_tenant_schema(ctx.schema_name, work, db)


def restore_bank_account(ctx: TenantContext, bank_account_id: int, db: Optional[Session] = None) -> BankAccount:
    def work(db: Session):
        db_bank_account = db.query(BankAccount).execution_options(include_deleted=True).filter(
            BankAccount.id == bank_account_id,
            by_tenant(BankAccount, ctx.tenant_id),
            only_deleted(BankAccount)
        ).first()
        if db_bank_account is None:
            raise NotFound(ErrorMessages.ACCOUNT_NOT_FOUND_OR_NOT_DELETED)
        db_bank_account.mark_restored()
        db.flush()
        return db_bank_account

    return with_tenant_schema(ctx.schema_name, work, db)
