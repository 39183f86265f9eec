"""
Journal entry engine.

Entries start as drafts. Posting applies every line to its account balance
and writes one balance-history row per line; a posted entry is never edited
or voided, it is cancelled by a reversing entry instead. Every operation runs
inside one tenant-scoped transaction, so a failure on any line leaves no
partial effect behind.
"""

import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

import pytz
from sqlalchemy.orm import Session

from crud import account_balance_history as balance_history_crud
from crud.chart_of_accounts import apply_balance_change
from models.account_balance_history import BalanceChangeType
from models.audit_mixin import utc_now
from models.chart_of_accounts import ChartOfAccounts
from models.journal_entry import (
    JournalEntry,
    JournalEntryStatus,
    JournalEntryType,
    JOURNAL_ENTRIES_SOURCE,
)
from models.journal_entry_line import JournalEntryLine
from schemas.journal_entry import JournalEntryCreate, JournalEntryUpdate
from utils.errors import BadRequest, Conflict, Forbidden, NotFound, ErrorMessages
from utils.filters import by_tenant, not_deleted, only_deleted, search, apply_filters, apply_sort, paginate
from utils.tenancy import TenantContext, with_tenant_schema

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = Decimal("0.01")
MIN_LINES = 2
ENTRY_NUMBER_PREFIX = "JE"

SORT_FIELDS = {
    "entry_number": "entry_number",
    "entry_date": "entry_date",
    "entry_type": "entry_type",
    "status": "status",
    "total_debit": "total_debit",
    "total_credit": "total_credit",
    "created_at": "created_at",
    "updated_at": "updated_at",
}

HEADER_FIELDS = ("entry_date", "entry_type", "is_adjusting", "is_closing", "description", "reference", "memo")


def validate_lines(lines: Iterable) -> Tuple[Decimal, Decimal]:
    """
    Check the double-entry rules and return ``(total_debit, total_credit)``.

    At least two lines, each line strictly one of debit or credit, and the
    totals equal within one cent.
    """
    lines = list(lines)
    if len(lines) < MIN_LINES:
        raise BadRequest(ErrorMessages.JOURNAL_ENTRY_INSUFFICIENT_LINES)

    total_debit = Decimal("0")
    total_credit = Decimal("0")
    for line in lines:
        debit = Decimal(line.debit or 0)
        credit = Decimal(line.credit or 0)
        if debit < 0 or credit < 0 or (debit > 0) == (credit > 0):
            raise BadRequest(ErrorMessages.JOURNAL_ENTRY_LINE_INVALID)
        total_debit += debit
        total_credit += credit

    if abs(total_debit - total_credit) >= BALANCE_TOLERANCE:
        raise BadRequest(ErrorMessages.JOURNAL_ENTRY_NOT_BALANCED)
    return total_debit, total_credit


def _entries(db: Session, ctx: TenantContext):
    return db.query(JournalEntry).filter(
        by_tenant(JournalEntry, ctx.tenant_id),
        not_deleted(JournalEntry)
    )


def _get_entry(db: Session, ctx: TenantContext, entry_id: int, for_update: bool = False) -> JournalEntry:
    query = _entries(db, ctx).filter(JournalEntry.id == entry_id)
    if for_update:
        query = query.with_for_update()
    entry = query.first()
    if entry is None:
        raise NotFound(ErrorMessages.JOURNAL_ENTRY_NOT_FOUND)
    return entry


def _ensure_accounts_exist(db: Session, ctx: TenantContext, account_ids):
    account_ids = set(account_ids)
    found = {
        account_id for (account_id,) in db.query(ChartOfAccounts.id).filter(
            ChartOfAccounts.id.in_(account_ids),
            by_tenant(ChartOfAccounts, ctx.tenant_id),
            not_deleted(ChartOfAccounts)
        ).all()
    }
    if found != account_ids:
        raise NotFound(ErrorMessages.JOURNAL_ENTRY_LINE_ACCOUNT_NOT_FOUND)


def _ensure_number_available(db: Session, ctx: TenantContext, entry_number: str, exclude_id: Optional[int] = None):
    query = _entries(db, ctx).filter(JournalEntry.entry_number == entry_number)
    if exclude_id is not None:
        query = query.filter(JournalEntry.id != exclude_id)
    if query.first() is not None:
        raise Conflict(ErrorMessages.JOURNAL_ENTRY_NUMBER_EXISTS)


def generate_entry_number(ctx: TenantContext, year: Optional[int] = None, db: Optional[Session] = None) -> str:
    """Next ``JE-<year>-NNN`` number; the sequence restarts every year."""
    prefix = f"{ENTRY_NUMBER_PREFIX}-{year or utc_now().year}-"

    def work(db: Session):
        rows = _entries(db, ctx).filter(
            JournalEntry.entry_number.like(f"{prefix}%")
        ).with_entities(JournalEntry.entry_number).all()
        sequence = [int(number[len(prefix):]) for (number,) in rows if number[len(prefix):].isdigit()]
        return f"{prefix}{(max(sequence) + 1 if sequence else 1):03d}"

    return with_tenant_schema(ctx.schema_name, work, db)


def _build_lines(ctx: TenantContext, lines) -> List[JournalEntryLine]:
    built = []
    for index, line in enumerate(lines, start=1):
        built.append(JournalEntryLine(
            tenant_id=ctx.tenant_id,
            account_id=line.account_id,
            line_number=getattr(line, "line_number", None) or index,
            debit=Decimal(line.debit or 0),
            credit=Decimal(line.credit or 0),
            description=line.description,
            memo=line.memo,
            contact_id=line.contact_id,
            created_by=ctx.user_id,
        ))
    return built


def _insert_entry(db: Session, ctx: TenantContext, header: dict, lines) -> JournalEntry:
    total_debit, total_credit = validate_lines(lines)
    _ensure_accounts_exist(db, ctx, [line.account_id for line in lines])

    if header.get("entry_number"):
        _ensure_number_available(db, ctx, header["entry_number"])
    else:
        header["entry_number"] = generate_entry_number(ctx, db=db)

    entry = JournalEntry(
        **header,
        tenant_id=ctx.tenant_id,
        status=JournalEntryStatus.DRAFT.value,
        total_debit=total_debit,
        total_credit=total_credit,
        created_by=ctx.user_id,
    )
    entry.lines = _build_lines(ctx, lines)
    db.add(entry)
    db.flush()
    return entry


def create_journal_entry(ctx: TenantContext, entry: JournalEntryCreate, db: Optional[Session] = None) -> JournalEntry:
    """Validate and store a new draft entry with its lines."""
    def work(db: Session):
        header = entry.model_dump(exclude={"lines"})
        header["entry_type"] = JournalEntryType(header["entry_type"]).value
        header["is_reversing"] = header["entry_type"] == JournalEntryType.REVERSING.value
        db_entry = _insert_entry(db, ctx, header, entry.lines)
        logger.info(f"Journal entry {db_entry.entry_number} created as draft by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_entry

    return with_tenant_schema(ctx.schema_name, work, db)


def get_journal_entry(ctx: TenantContext, entry_id: int, db: Optional[Session] = None) -> JournalEntry:
    return with_tenant_schema(ctx.schema_name, lambda db: _get_entry(db, ctx, entry_id), db)


def get_journal_entries(
    ctx: TenantContext,
    page: int = 1,
    limit: int = 20,
    search_term: Optional[str] = None,
    status: Optional[str] = None,
    entry_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    source_module: Optional[str] = None,
    sort: Optional[str] = None,
    order: str = "desc",
    db: Optional[Session] = None,
):
    """Paginated entry list. Returns ``(items, total)``."""
    def work(db: Session):
        query = apply_filters(
            _entries(db, ctx),
            search(search_term, JournalEntry.entry_number, JournalEntry.description, JournalEntry.reference),
            JournalEntry.status == JournalEntryStatus(status).value if status else None,
            JournalEntry.entry_type == JournalEntryType(entry_type).value if entry_type else None,
            JournalEntry.entry_date >= start_date if start_date else None,
            JournalEntry.entry_date <= end_date if end_date else None,
            JournalEntry.source_module == source_module if source_module else None,
        )
        query = apply_sort(query, JournalEntry, sort, order, SORT_FIELDS, "entry_date")
        return paginate(query, page, limit)

    return with_tenant_schema(ctx.schema_name, work, db)


def update_journal_entry(ctx: TenantContext, entry_id: int, entry_update: JournalEntryUpdate, db: Optional[Session] = None) -> JournalEntry:
    """Patch a draft. New lines replace the old ones and are re-validated."""
    def work(db: Session):
        db_entry = _get_entry(db, ctx, entry_id, for_update=True)
        if db_entry.status != JournalEntryStatus.DRAFT.value:
            logger.warning(f"Rejected update of {db_entry.status} journal entry {db_entry.id} for tenant {ctx.tenant_id}")
            raise Forbidden(ErrorMessages.JOURNAL_ENTRY_CANNOT_MODIFY_POSTED)

        update_data = entry_update.model_dump(exclude_unset=True)
        lines = entry_update.lines if "lines" in update_data and entry_update.lines is not None else None

        new_number = update_data.get("entry_number")
        if new_number and new_number != db_entry.entry_number:
            _ensure_number_available(db, ctx, new_number, exclude_id=db_entry.id)
            db_entry.entry_number = new_number

        for key in HEADER_FIELDS:
            if key in update_data and update_data[key] is not None:
                value = update_data[key]
                if key == "entry_type":
                    value = JournalEntryType(value).value
                    db_entry.is_reversing = value == JournalEntryType.REVERSING.value
                setattr(db_entry, key, value)
        for key in ("description", "reference", "memo"):
            if key in update_data and update_data[key] is None:
                setattr(db_entry, key, None)

        if lines is not None:
            total_debit, total_credit = validate_lines(lines)
            _ensure_accounts_exist(db, ctx, [line.account_id for line in lines])
            db_entry.lines.clear()
            db.flush()
            db_entry.lines.extend(_build_lines(ctx, lines))
            db_entry.total_debit = total_debit
            db_entry.total_credit = total_credit

        db_entry.updated_by = ctx.user_id
        db.flush()
        logger.info(f"Journal entry {db_entry.entry_number} updated by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_entry

    return with_tenant_schema(ctx.schema_name, work, db)


def _claim_draft(db: Session, ctx: TenantContext, entry_id: int, values: dict) -> bool:
    """
    Move an entry out of draft with a conditional UPDATE.

    Of two transactions racing on the same draft only one sees a row change;
    the other gets False and must back out.
    """
    rowcount = db.query(JournalEntry).filter(
        JournalEntry.id == entry_id,
        by_tenant(JournalEntry, ctx.tenant_id),
        JournalEntry.status == JournalEntryStatus.DRAFT.value
    ).update(values)
    return rowcount == 1


def _entry_change_date(entry_date: date) -> datetime:
    return pytz.utc.localize(datetime.combine(entry_date, time.min))


def _apply_to_balances(db: Session, ctx: TenantContext, entry: JournalEntry):
    account_ids = sorted({line.account_id for line in entry.lines})
    # Lock in id order so concurrent postings touching the same accounts cannot deadlock
    accounts = {
        account.id: account for account in db.query(ChartOfAccounts).filter(
            ChartOfAccounts.id.in_(account_ids),
            by_tenant(ChartOfAccounts, ctx.tenant_id),
            not_deleted(ChartOfAccounts)
        ).order_by(ChartOfAccounts.id).with_for_update().all()
    }

    change_date = _entry_change_date(entry.entry_date)
    for line in entry.lines:
        account = accounts.get(line.account_id)
        if account is None:
            raise NotFound(ErrorMessages.CHART_OF_ACCOUNT_NOT_FOUND)

        is_debit = line.debit > 0
        amount = line.debit if is_debit else line.credit
        previous_balance = account.current_balance
        new_balance = apply_balance_change(account.account_type, previous_balance, amount, is_debit)
        account.current_balance = new_balance

        if line.description:
            description = f"{entry.entry_number}: {line.description}"
        else:
            description = f"Journal Entry {entry.entry_number or entry.id}"

        balance_history_crud.record_balance_change(
            ctx,
            account_id=account.id,
            previous_balance=previous_balance,
            new_balance=new_balance,
            change_amount=amount,
            change_type=BalanceChangeType.DEBIT if is_debit else BalanceChangeType.CREDIT,
            journal_entry_id=entry.id,
            journal_entry_line_id=line.id,
            change_date=change_date,
            description=description,
            source_module=JOURNAL_ENTRIES_SOURCE,
            source_id=entry.id,
            db=db,
        )
    db.flush()


def post_journal_entry(ctx: TenantContext, entry_id: int, approved_by: Optional[str] = None, db: Optional[Session] = None) -> JournalEntry:
    """
    draft -> posted.

    Applies every line to its account's running balance and records one
    history row per line, all in the caller's transaction.
    """
    def work(db: Session):
        db_entry = _get_entry(db, ctx, entry_id)
        if db_entry.status == JournalEntryStatus.POSTED.value:
            raise Conflict(ErrorMessages.JOURNAL_ENTRY_ALREADY_POSTED)
        if db_entry.status == JournalEntryStatus.VOIDED.value:
            raise Forbidden(ErrorMessages.JOURNAL_ENTRY_CANNOT_POST_VOIDED)

        validate_lines(db_entry.lines)

        now = utc_now()
        values = {
            JournalEntry.status: JournalEntryStatus.POSTED.value,
            JournalEntry.posted_by: ctx.user_id,
            JournalEntry.posted_at: now,
        }
        if approved_by:
            values[JournalEntry.approved_by] = approved_by
            values[JournalEntry.approved_at] = now

        if not _claim_draft(db, ctx, db_entry.id, values):
            logger.warning(f"Journal entry {db_entry.id} was posted concurrently; rejecting second post")
            raise Conflict(ErrorMessages.JOURNAL_ENTRY_ALREADY_POSTED)

        _apply_to_balances(db, ctx, db_entry)
        logger.info(f"Journal entry {db_entry.entry_number} posted by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_entry

    return with_tenant_schema(ctx.schema_name, work, db)


def void_journal_entry(ctx: TenantContext, entry_id: int, db: Optional[Session] = None) -> JournalEntry:
    """draft -> voided. Posted entries must be reversed instead."""
    def work(db: Session):
        db_entry = _get_entry(db, ctx, entry_id)
        if db_entry.status == JournalEntryStatus.VOIDED.value:
            raise Conflict(ErrorMessages.JOURNAL_ENTRY_ALREADY_VOIDED)
        if db_entry.status == JournalEntryStatus.POSTED.value:
            logger.warning(f"Rejected void of posted journal entry {db_entry.id} for tenant {ctx.tenant_id}")
            raise Forbidden(ErrorMessages.JOURNAL_ENTRY_CANNOT_VOID_POSTED)

        values = {JournalEntry.status: JournalEntryStatus.VOIDED.value, JournalEntry.updated_by: ctx.user_id}
        if not _claim_draft(db, ctx, db_entry.id, values):
            raise Forbidden(ErrorMessages.JOURNAL_ENTRY_CANNOT_VOID_POSTED)

        logger.info(f"Journal entry {db_entry.entry_number} voided by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_entry

    return with_tenant_schema(ctx.schema_name, work, db)


def delete_journal_entry(ctx: TenantContext, entry_id: int, db: Optional[Session] = None) -> JournalEntry:
    def work(db: Session):
        db_entry = _get_entry(db, ctx, entry_id, for_update=True)
        if db_entry.status == JournalEntryStatus.POSTED.value:
            raise Forbidden(ErrorMessages.JOURNAL_ENTRY_CANNOT_DELETE_POSTED)

        db_entry.mark_deleted(ctx.user_id)
        for line in db_entry.lines:
            line.mark_deleted(ctx.user_id)
        db.flush()
        logger.info(f"Journal entry {db_entry.entry_number} deleted by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_entry

    return with_tenant_schema(ctx.schema_name, work, db)


def restore_journal_entry(ctx: TenantContext, entry_id: int, db: Optional[Session] = None) -> JournalEntry:
    """Undelete an entry. Drafts must still balance to come back."""
    def work(db: Session):
        db_entry = db.query(JournalEntry).execution_options(include_deleted=True).filter(
            JournalEntry.id == entry_id,
            by_tenant(JournalEntry, ctx.tenant_id),
            only_deleted(JournalEntry)
        ).first()
        if db_entry is None:
            raise NotFound(ErrorMessages.JOURNAL_ENTRY_NOT_FOUND_OR_NOT_DELETED)

        if db_entry.status == JournalEntryStatus.DRAFT.value:
            validate_lines(db_entry.lines)
        if db_entry.entry_number:
            _ensure_number_available(db, ctx, db_entry.entry_number, exclude_id=db_entry.id)

        db_entry.mark_restored()
        for line in db_entry.lines:
            line.mark_restored()
        db_entry.updated_by = ctx.user_id
        db.flush()
        logger.info(f"Journal entry {db_entry.entry_number} restored by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_entry

    return with_tenant_schema(ctx.schema_name, work, db)


def _find_reversal(db: Session, ctx: TenantContext, entry_id: int) -> Optional[JournalEntry]:
    return _entries(db, ctx).filter(
        JournalEntry.source_module == JOURNAL_ENTRIES_SOURCE,
        JournalEntry.source_id == entry_id,
        JournalEntry.is_reversing.is_(True)
    ).first()


def reverse_journal_entry(ctx: TenantContext, entry_id: int, reversal_date: Optional[date], db: Optional[Session] = None) -> JournalEntry:
    """
    Cancel a posted entry with a new entry whose lines swap debit and credit.

    The reversing entry is dated ``reversal_date`` and posted through the
    normal path, so every affected account nets back to where it was. The
    original keeps its posted status and records the reversal date.
    """
    if reversal_date is None:
        raise BadRequest(ErrorMessages.JOURNAL_ENTRY_REVERSAL_DATE_REQUIRED)

    def work(db: Session):
        original = _get_entry(db, ctx, entry_id, for_update=True)
        if original.status == JournalEntryStatus.VOIDED.value:
            raise Forbidden(ErrorMessages.JOURNAL_ENTRY_CANNOT_REVERSE_VOIDED)
        if original.status != JournalEntryStatus.POSTED.value:
            raise Forbidden(ErrorMessages.JOURNAL_ENTRY_CANNOT_REVERSE_DRAFT)
        if _find_reversal(db, ctx, original.id) is not None:
            raise Conflict(ErrorMessages.JOURNAL_ENTRY_ALREADY_REVERSED)

        description = f"Reversal of {original.entry_number}"
        if original.description:
            description = f"{description}: {original.description}"

        header = {
            "entry_date": reversal_date,
            "entry_type": JournalEntryType.REVERSING.value,
            "is_adjusting": original.is_adjusting,
            "is_closing": original.is_closing,
            "is_reversing": True,
            "reversal_date": reversal_date,
            "description": description,
            "reference": original.reference,
            "memo": original.memo,
            "source_module": JOURNAL_ENTRIES_SOURCE,
            "source_id": original.id,
        }
        swapped = [
            JournalEntryLine(
                account_id=line.account_id,
                line_number=line.line_number,
                debit=line.credit,
                credit=line.debit,
                description=f"Reversal: {line.description}" if line.description else None,
                memo=line.memo,
                contact_id=line.contact_id,
            )
            for line in original.lines
        ]
        reversing = _insert_entry(db, ctx, header, swapped)
        post_journal_entry(ctx, reversing.id, db=db)

        original.reversal_date = reversal_date
        original.updated_by = ctx.user_id
        db.flush()
        logger.info(f"Journal entry {original.entry_number} reversed by {reversing.entry_number} (user {ctx.user_id}, tenant {ctx.tenant_id})")
        return reversing

    return with_tenant_schema(ctx.schema_name, work, db)


def duplicate_journal_entry(
    ctx: TenantContext,
    entry_id: int,
    entry_date: Optional[date] = None,
    entry_number: Optional[str] = None,
    db: Optional[Session] = None,
) -> JournalEntry:
    """Copy any entry, whatever its status, into a new draft."""
    def work(db: Session):
        original = _get_entry(db, ctx, entry_id)
        header = {
            "entry_number": entry_number,
            "entry_date": entry_date or original.entry_date,
            "entry_type": original.entry_type,
            "is_adjusting": original.is_adjusting,
            "is_closing": original.is_closing,
            "is_reversing": False,
            "reversal_date": None,
            "description": original.description,
            "reference": original.reference,
            "memo": original.memo,
            "source_module": JOURNAL_ENTRIES_SOURCE,
            "source_id": original.id,
        }
        copy = _insert_entry(db, ctx, header, list(original.lines))
        logger.info(f"Journal entry {original.entry_number} duplicated as {copy.entry_number} by user {ctx.user_id}")
        return copy

    return with_tenant_schema(ctx.schema_name, work, db)
