import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from models.bank_account import BankAccount
from models.chart_of_accounts import (
    ChartOfAccounts,
    AccountType,
    ACCOUNT_NUMBER_RANGES,
    DEBIT_NORMAL_TYPES,
    DEFAULT_CURRENCY_CODE,
)
from models.journal_entry import JournalEntry
from models.journal_entry_line import JournalEntryLine
from schemas.chart_of_accounts import (
    ChartOfAccountsCreate,
    ChartOfAccountsUpdate,
    ChartOfAccounts as ChartOfAccountsSchema,
    ChartOfAccountsNode,
)
from utils.coa_sample import SUB_ACCOUNT_SEPARATOR
from utils.errors import BadRequest, Conflict, Forbidden, NotFound, ErrorMessages
from utils.filters import by_tenant, not_deleted, only_deleted, search, apply_filters, apply_sort, paginate
from utils.tenancy import TenantContext, with_tenant_schema

logger = logging.getLogger(__name__)

# Fields an update may clear by sending null
NULLABLE_FIELDS = {
    "parent_account_id", "account_subtype", "account_detail_type", "description",
    "default_tax_id", "bank_account_number", "bank_routing_number",
}

SORT_FIELDS = {
    "account_number": "account_number",
    "account_name": "account_name",
    "account_type": "account_type",
    "current_balance": "current_balance",
    "created_at": "created_at",
}


def _accounts(db: Session, ctx: TenantContext):
    return db.query(ChartOfAccounts).filter(
        by_tenant(ChartOfAccounts, ctx.tenant_id),
        not_deleted(ChartOfAccounts)
    )


def _get_account(db: Session, ctx: TenantContext, account_id: int, for_update: bool = False) -> ChartOfAccounts:
    query = _accounts(db, ctx).filter(ChartOfAccounts.id == account_id)
    if for_update:
        query = query.with_for_update()
    account = query.first()
    if account is None:
        raise NotFound(ErrorMessages.CHART_OF_ACCOUNT_NOT_FOUND)
    return account


def _ensure_number_available(db: Session, ctx: TenantContext, account_number: str, exclude_id: Optional[int] = None):
    query = _accounts(db, ctx).filter(ChartOfAccounts.account_number == account_number)
    if exclude_id is not None:
        query = query.filter(ChartOfAccounts.id != exclude_id)
    if query.first() is not None:
        raise Conflict(ErrorMessages.CHART_OF_ACCOUNT_NUMBER_EXISTS)


def _validate_parent(db: Session, ctx: TenantContext, parent_id: int, account_type: str, account_id: Optional[int] = None):
    parent = _accounts(db, ctx).filter(ChartOfAccounts.id == parent_id).first()
    if parent is None:
        raise NotFound(ErrorMessages.CHART_OF_ACCOUNT_PARENT_NOT_FOUND)
    if parent.account_type != account_type:
        raise BadRequest(ErrorMessages.CHART_OF_ACCOUNT_PARENT_TYPE_MISMATCH)
    if account_id is not None:
        # Walk up from the new parent; meeting the account itself means a cycle
        ancestor = parent
        while ancestor is not None:
            if ancestor.id == account_id:
                raise BadRequest(ErrorMessages.CHART_OF_ACCOUNT_PARENT_CYCLE)
            ancestor = _accounts(db, ctx).filter(ChartOfAccounts.id == ancestor.parent_account_id).first() \
                if ancestor.parent_account_id else None
    return parent


def _has_children(db: Session, ctx: TenantContext, account_id: int) -> bool:
    return _accounts(db, ctx).filter(ChartOfAccounts.parent_account_id == account_id).first() is not None


def generate_account_number(ctx: TenantContext, account_type, db: Optional[Session] = None) -> str:
    """
    Next free number in the account type's range.

    Returns the range minimum when no numbered account of the type exists,
    otherwise the highest number + 1. Raises BadRequest once the range is used up.
    """
    account_type = AccountType(account_type)
    low, high = ACCOUNT_NUMBER_RANGES[account_type]

    def work(db: Session):
        rows = _accounts(db, ctx).filter(
            ChartOfAccounts.account_type == account_type.value,
            ChartOfAccounts.account_number.isnot(None)
        ).with_entities(ChartOfAccounts.account_number).all()

        in_range = [int(number) for (number,) in rows if number.isdigit() and low <= int(number) <= high]
        if not in_range:
            return str(low)

        next_number = max(in_range) + 1
        if next_number > high:
            raise BadRequest(
                ErrorMessages.CHART_OF_ACCOUNT_NUMBER_RANGE_EXHAUSTED,
                f"No {account_type.value} account numbers left between {low} and {high}"
            )
        return str(next_number)

    return with_tenant_schema(ctx.schema_name, work, db)


def _create(db: Session, ctx: TenantContext, account: ChartOfAccountsCreate) -> ChartOfAccounts:
    data = account.model_dump()
    account_type = AccountType(data.pop("account_type"))

    if data.get("account_number"):
        _ensure_number_available(db, ctx, data["account_number"])
    else:
        data["account_number"] = generate_account_number(ctx, account_type, db=db)

    if data.get("parent_account_id") is not None:
        _validate_parent(db, ctx, data["parent_account_id"], account_type.value)

    opening_balance = data.pop("opening_balance") or Decimal("0")
    data["currency_code"] = data.get("currency_code") or DEFAULT_CURRENCY_CODE

    db_account = ChartOfAccounts(
        **data,
        tenant_id=ctx.tenant_id,
        account_type=account_type.value,
        opening_balance=opening_balance,
        current_balance=opening_balance,
        created_by=ctx.user_id,
    )
    db.add(db_account)
    db.flush()
    return db_account


def create_account(ctx: TenantContext, account: ChartOfAccountsCreate, db: Optional[Session] = None) -> ChartOfAccounts:
    def work(db: Session):
        db_account = _create(db, ctx, account)
        logger.info(f"Account '{db_account.account_name}' ({db_account.account_number}) created by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_account

    return with_tenant_schema(ctx.schema_name, work, db)


def get_account(ctx: TenantContext, account_id: int, db: Optional[Session] = None) -> ChartOfAccounts:
    return with_tenant_schema(ctx.schema_name, lambda db: _get_account(db, ctx, account_id), db)


def get_accounts(
    ctx: TenantContext,
    page: int = 1,
    limit: int = 20,
    search_term: Optional[str] = None,
    is_active: Optional[bool] = None,
    account_type: Optional[str] = None,
    account_subtype: Optional[str] = None,
    parent_account_id: Optional[int] = None,
    top_level_only: bool = False,
    sort: Optional[str] = None,
    order: str = "asc",
    db: Optional[Session] = None,
):
    """Paginated account list. Returns ``(items, total)``."""
    def work(db: Session):
        query = apply_filters(
            _accounts(db, ctx),
            search(search_term, ChartOfAccounts.account_name, ChartOfAccounts.account_number, ChartOfAccounts.description),
            ChartOfAccounts.is_active.is_(is_active) if is_active is not None else None,
            ChartOfAccounts.account_type == AccountType(account_type).value if account_type else None,
            ChartOfAccounts.account_subtype == account_subtype if account_subtype else None,
            ChartOfAccounts.parent_account_id == parent_account_id if parent_account_id is not None else None,
            ChartOfAccounts.parent_account_id.is_(None) if top_level_only else None,
        )
        query = apply_sort(query, ChartOfAccounts, sort, order, SORT_FIELDS, "account_number")
        return paginate(query, page, limit)

    return with_tenant_schema(ctx.schema_name, work, db)


def update_account(ctx: TenantContext, account_id: int, account_update: ChartOfAccountsUpdate, db: Optional[Session] = None) -> ChartOfAccounts:
    def work(db: Session):
        db_account = _get_account(db, ctx, account_id)
        if db_account.is_system_account:
            raise Forbidden(ErrorMessages.CHART_OF_ACCOUNT_IS_SYSTEM)

        update_data = {
            key: value for key, value in account_update.model_dump(exclude_unset=True).items()
            if value is not None or key in NULLABLE_FIELDS
        }
        if "account_type" in update_data:
            if update_data["account_type"] is None:
                update_data.pop("account_type")
            else:
                update_data["account_type"] = AccountType(update_data["account_type"]).value
        account_type = update_data.get("account_type", db_account.account_type)

        if update_data.get("account_number"):
            _ensure_number_available(db, ctx, update_data["account_number"], exclude_id=db_account.id)
        elif "account_number" in update_data:
            update_data.pop("account_number")

        parent_id = update_data.get("parent_account_id", db_account.parent_account_id)
        if parent_id is not None and ("parent_account_id" in update_data or "account_type" in update_data):
            _validate_parent(db, ctx, parent_id, account_type, account_id=db_account.id)

        if account_type != db_account.account_type and _has_children(db, ctx, db_account.id):
            raise BadRequest(ErrorMessages.CHART_OF_ACCOUNT_PARENT_TYPE_MISMATCH, "Cannot change the type of an account with sub-accounts")

        for key, value in update_data.items():
            setattr(db_account, key, value)
        db_account.updated_by = ctx.user_id
        db.flush()
        logger.info(f"Account {db_account.id} updated by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_account

    return with_tenant_schema(ctx.schema_name, work, db)


def delete_account(ctx: TenantContext, account_id: int, db: Optional[Session] = None) -> ChartOfAccounts:
    def work(db: Session):
        db_account = _get_account(db, ctx, account_id)
        if db_account.is_system_account:
            raise Forbidden(ErrorMessages.CHART_OF_ACCOUNT_IS_SYSTEM)
        if _has_children(db, ctx, db_account.id):
            raise Conflict(ErrorMessages.CHART_OF_ACCOUNT_HAS_CHILDREN)

        in_use = db.query(JournalEntryLine.id).join(
            JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id
        ).filter(
            JournalEntryLine.account_id == db_account.id,
            not_deleted(JournalEntryLine),
            not_deleted(JournalEntry)
        ).first()
        if in_use is not None:
            raise Conflict(ErrorMessages.CHART_OF_ACCOUNT_IN_USE)

        db_account.mark_deleted(ctx.user_id)
        db.flush()
        logger.info(f"Account {db_account.id} deleted by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_account

    return with_tenant_schema(ctx.schema_name, work, db)


def restore_account(ctx: TenantContext, account_id: int, db: Optional[Session] = None) -> ChartOfAccounts:
    def work(db: Session):
        db_account = db.query(ChartOfAccounts).execution_options(include_deleted=True).filter(
            ChartOfAccounts.id == account_id,
            by_tenant(ChartOfAccounts, ctx.tenant_id),
            only_deleted(ChartOfAccounts)
        ).first()
        if db_account is None:
            raise NotFound(ErrorMessages.CHART_OF_ACCOUNT_NOT_FOUND_OR_NOT_DELETED)
        if db_account.account_number:
            _ensure_number_available(db, ctx, db_account.account_number, exclude_id=db_account.id)

        db_account.mark_restored()
        db_account.updated_by = ctx.user_id
        db.flush()
        logger.info(f"Account {db_account.id} restored by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_account

    return with_tenant_schema(ctx.schema_name, work, db)


def set_account_active(ctx: TenantContext, account_id: int, is_active: bool, db: Optional[Session] = None) -> ChartOfAccounts:
    def work(db: Session):
        db_account = _get_account(db, ctx, account_id)
        if db_account.is_system_account:
            raise Forbidden(ErrorMessages.CHART_OF_ACCOUNT_IS_SYSTEM)
        db_account.is_active = is_active
        db_account.updated_by = ctx.user_id
        db.flush()
        logger.info(f"Account {db_account.id} set to {'ACTIVE' if is_active else 'INACTIVE'} by user {ctx.user_id}")
        return db_account

    return with_tenant_schema(ctx.schema_name, work, db)


def apply_balance_change(account_type: str, current_balance, amount, is_debit: bool) -> Decimal:
    """
    New balance after a debit or credit of ``amount``.

    Asset and expense accounts grow with debits; liability, equity and
    revenue accounts grow with credits.
    """
    current_balance = Decimal(current_balance or 0)
    amount = Decimal(amount)
    debit_normal = AccountType(account_type) in DEBIT_NORMAL_TYPES
    if debit_normal == is_debit:
        return current_balance + amount
    return current_balance - amount


def update_balance(ctx: TenantContext, account_id: int, amount, is_debit: bool, db: Optional[Session] = None) -> Decimal:
    """Lock the account row, apply the change and return the new balance."""
    def work(db: Session):
        db_account = _get_account(db, ctx, account_id, for_update=True)
        db_account.current_balance = apply_balance_change(db_account.account_type, db_account.current_balance, amount, is_debit)
        db.flush()
        return db_account.current_balance

    return with_tenant_schema(ctx.schema_name, work, db)


def get_account_hierarchy(ctx: TenantContext, db: Optional[Session] = None) -> List[ChartOfAccountsNode]:
    """Active top-level accounts, each with its active direct children."""
    def work(db: Session):
        ordering = (ChartOfAccounts.account_number.asc(), ChartOfAccounts.account_name.asc())
        top_level = _accounts(db, ctx).filter(
            ChartOfAccounts.parent_account_id.is_(None),
            ChartOfAccounts.is_active.is_(True)
        ).order_by(*ordering).all()

        children: Dict[int, List[ChartOfAccounts]] = {}
        if top_level:
            rows = _accounts(db, ctx).filter(
                ChartOfAccounts.parent_account_id.in_([account.id for account in top_level]),
                ChartOfAccounts.is_active.is_(True)
            ).order_by(*ordering).all()
            for child in rows:
                children.setdefault(child.parent_account_id, []).append(child)

        tree = []
        for account in top_level:
            node = ChartOfAccountsNode.model_validate(account)
            node.children = [ChartOfAccountsSchema.model_validate(child) for child in children.get(account.id, [])]
            tree.append(node)
        return tree

    return with_tenant_schema(ctx.schema_name, work, db)


def link_bank_account(ctx: TenantContext, account_id: int, bank_account_id: int, db: Optional[Session] = None) -> ChartOfAccounts:
    def work(db: Session):
        db_account = _get_account(db, ctx, account_id)
        if db_account.is_system_account:
            raise Forbidden(ErrorMessages.CHART_OF_ACCOUNT_IS_SYSTEM)
        bank_account = db.query(BankAccount).filter(
            BankAccount.id == bank_account_id,
            by_tenant(BankAccount, ctx.tenant_id),
            not_deleted(BankAccount)
        ).first()
        if bank_account is None:
            raise NotFound(ErrorMessages.ACCOUNT_NOT_FOUND)

        db_account.bank_account_id = bank_account.id
        db_account.bank_account_number = bank_account.account_number
        db_account.bank_routing_number = bank_account.routing_number
        db_account.updated_by = ctx.user_id
        db.flush()
        logger.info(f"Bank account {bank_account.id} linked to account {db_account.id} for tenant {ctx.tenant_id}")
        return db_account

    return with_tenant_schema(ctx.schema_name, work, db)


def import_accounts(ctx: TenantContext, rows: List[Dict], db: Optional[Session] = None) -> List[ChartOfAccounts]:
    """
    Create accounts from parsed spreadsheet rows, all or nothing.

    A name written as "Parent:Child" becomes a sub-account of the account
    named "Parent", which must already exist or appear earlier in the file.
    """
    def work(db: Session):
        by_name = {account.account_name: account for account in _accounts(db, ctx).all()}
        created = []
        for row in rows:
            name = row.get("account_name")
            raw_type = (row.get("account_type") or "").strip().lower()
            if not name:
                raise BadRequest(ErrorMessages.CHART_OF_ACCOUNT_IMPORT_INVALID, f"Row {row.get('row_number')}: account name is required")
            try:
                account_type = AccountType(raw_type)
            except ValueError:
                raise BadRequest(ErrorMessages.CHART_OF_ACCOUNT_IMPORT_INVALID, f"Row {row.get('row_number')}: unknown account type '{raw_type}'")

            parent_id = None
            if SUB_ACCOUNT_SEPARATOR in name:
                parent_name, name = [part.strip() for part in name.rsplit(SUB_ACCOUNT_SEPARATOR, 1)]
                parent = by_name.get(parent_name)
                if parent is None:
                    raise BadRequest(ErrorMessages.CHART_OF_ACCOUNT_IMPORT_INVALID, f"Row {row.get('row_number')}: parent account '{parent_name}' not found")
                parent_id = parent.id

            db_account = _create(db, ctx, ChartOfAccountsCreate(
                account_number=row.get("account_number"),
                account_name=name,
                account_type=account_type,
                account_detail_type=row.get("account_detail_type"),
                parent_account_id=parent_id,
                opening_balance=row.get("opening_balance") or Decimal("0"),
            ))
            by_name[row["account_name"]] = db_account
            by_name.setdefault(db_account.account_name, db_account)
            created.append(db_account)

        logger.info(f"Imported {len(created)} accounts for tenant {ctx.tenant_id} by user {ctx.user_id}")
        return created

    return with_tenant_schema(ctx.schema_name, work, db)
