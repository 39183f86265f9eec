import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from crud import tax_exemption as tax_exemption_crud
from models.tax import Tax, TaxType
from schemas.tax import TaxCreate, TaxUpdate, TaxStatistics, TaxStatus, TaxCalculationResult
from utils.errors import BadRequest, NotFound, ErrorMessages
from utils.filters import by_tenant, not_deleted, active, search, apply_filters, apply_sort, paginate
from utils.tax_calculation import calculate_tax_with_exemptions
from utils.tenancy import TenantContext, with_tenant_schema

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "name": "name",
    "type": "type",
    "rate": "rate",
    "is_active": "is_active",
    "created_at": "created_at",
    "updated_at": "updated_at",
}

RECENT_TAXES_LIMIT = 5


def _taxes(db: Session, ctx: TenantContext):
    return db.query(Tax).filter(by_tenant(Tax, ctx.tenant_id), not_deleted(Tax))


def _get_tax(db: Session, ctx: TenantContext, tax_id: int) -> Tax:
    tax = _taxes(db, ctx).filter(Tax.id == tax_id).first()
    if tax is None:
        raise NotFound(ErrorMessages.TAX_NOT_FOUND)
    return tax


def load_taxes(db: Session, ctx: TenantContext, tax_ids: List[int]) -> List[Tax]:
    """
    Load every active tax in ``tax_ids`` or fail with INVALID_TAX_IDS.

    Result is ordered by type then id, which puts compound taxes first.
    """
    taxes = _taxes(db, ctx).filter(Tax.id.in_(tax_ids), active(Tax)).order_by(Tax.type.asc(), Tax.id.asc()).all()
    if len(taxes) != len(tax_ids):
        raise BadRequest(ErrorMessages.INVALID_TAX_IDS)
    return taxes


def create_tax(ctx: TenantContext, tax: TaxCreate, db: Optional[Session] = None) -> Tax:
    def work(db: Session):
        data = tax.model_dump()
        data["type"] = TaxType(data["type"]).value
        db_tax = Tax(**data, tenant_id=ctx.tenant_id, created_by=ctx.user_id)
        db.add(db_tax)
        db.flush()
        logger.info(f"Tax '{db_tax.name}' ({db_tax.rate}%) created by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_tax

    return with_tenant_schema(ctx.schema_name, work, db)


def get_tax(ctx: TenantContext, tax_id: int, db: Optional[Session] = None) -> Tax:
    return with_tenant_schema(ctx.schema_name, lambda db: _get_tax(db, ctx, tax_id), db)


def get_taxes(
    ctx: TenantContext,
    page: int = 1,
    limit: int = 20,
    search_term: Optional[str] = None,
    is_active: Optional[bool] = None,
    tax_type: Optional[str] = None,
    sort: Optional[str] = None,
    order: str = "asc",
    db: Optional[Session] = None,
):
    def work(db: Session):
        query = apply_filters(
            _taxes(db, ctx),
            search(search_term, Tax.name),
            Tax.is_active.is_(is_active) if is_active is not None else None,
            Tax.type == TaxType(tax_type).value if tax_type else None,
        )
        return paginate(apply_sort(query, Tax, sort, order, SORT_FIELDS, "name"), page, limit)

    return with_tenant_schema(ctx.schema_name, work, db)


def get_active_taxes(ctx: TenantContext, db: Optional[Session] = None) -> List[Tax]:
    return with_tenant_schema(
        ctx.schema_name,
        lambda db: _taxes(db, ctx).filter(active(Tax)).order_by(Tax.name.asc()).all(),
        db
    )


def update_tax(ctx: TenantContext, tax_id: int, tax_update: TaxUpdate, db: Optional[Session] = None) -> Tax:
    def work(db: Session):
        db_tax = _get_tax(db, ctx, tax_id)
        for key, value in tax_update.model_dump(exclude_unset=True).items():
            if value is None and key != "description":
                continue
            if key == "type":
                value = TaxType(value).value
            setattr(db_tax, key, value)
        db_tax.updated_by = ctx.user_id
        db.flush()
        logger.info(f"Tax {db_tax.id} updated by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_tax

    return with_tenant_schema(ctx.schema_name, work, db)


def set_tax_active(ctx: TenantContext, tax_id: int, is_active: bool, db: Optional[Session] = None) -> Tax:
    return update_tax(ctx, tax_id, TaxUpdate(is_active=is_active), db)


def delete_tax(ctx: TenantContext, tax_id: int, db: Optional[Session] = None) -> Tax:
    def work(db: Session):
        db_tax = _get_tax(db, ctx, tax_id)
        db_tax.mark_deleted(ctx.user_id)
        db.flush()
        logger.info(f"Tax {db_tax.id} deleted by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_tax

    return with_tenant_schema(ctx.schema_name, work, db)


def restore_tax(ctx: TenantContext, tax_id: int, db: Optional[Session] = None) -> Tax:
    def work(db: Session):
        db_tax = db.query(Tax).execution_options(include_deleted=True).filter(
            Tax.id == tax_id,
            by_tenant(Tax, ctx.tenant_id)
        ).first()
        if db_tax is None:
            raise NotFound(ErrorMessages.TAX_NOT_FOUND)
        if db_tax.deleted_at is None:
            raise BadRequest(ErrorMessages.TAX_NOT_DELETED)
        db_tax.mark_restored()
        db_tax.updated_by = ctx.user_id
        db.flush()
        return db_tax

    return with_tenant_schema(ctx.schema_name, work, db)


def get_tax_status(ctx: TenantContext, tax_id: int, db: Optional[Session] = None) -> TaxStatus:
    return TaxStatus.model_validate(get_tax(ctx, tax_id, db))


def get_tax_statistics(ctx: TenantContext, db: Optional[Session] = None) -> TaxStatistics:
    """Counts by state and type, the mean rate and the five newest taxes."""
    def work(db: Session):
        base = db.query(Tax).filter(by_tenant(Tax, ctx.tenant_id), not_deleted(Tax))
        total = base.count()
        active_count = base.filter(active(Tax)).count()

        by_type = {tax_type.value: 0 for tax_type in TaxType}
        rows = base.with_entities(Tax.type, func.count(Tax.id)).group_by(Tax.type).all()
        for tax_type, count in rows:
            by_type[tax_type] = count

        average = base.with_entities(func.avg(Tax.rate)).scalar()
        average_rate = Decimal(str(average or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        recent = base.order_by(Tax.created_at.desc(), Tax.id.desc()).limit(RECENT_TAXES_LIMIT).all()
        return TaxStatistics(
            total=total,
            active=active_count,
            inactive=total - active_count,
            by_type=by_type,
            average_rate=average_rate,
            recent_taxes=[TaxStatus.model_validate(tax) for tax in recent],
        )

    return with_tenant_schema(ctx.schema_name, work, db)


def calculate_tax(ctx: TenantContext, amount, tax_ids: List[int], contact_id: Optional[int] = None,
                  db: Optional[Session] = None) -> TaxCalculationResult:
    """
    Tax ``amount`` with an ad-hoc list of taxes.

    Unlike a tax group, an ad-hoc list carries no order of its own, so the
    taxes are applied in type order with compound taxes first.
    """
    def work(db: Session):
        taxes = load_taxes(db, ctx, tax_ids)

        def is_exempt(contact, tax_id):
            return tax_exemption_crud.is_contact_exempt(ctx, contact, tax_id, db=db)

        return calculate_tax_with_exemptions(amount, taxes, contact_id, is_exempt)

    return with_tenant_schema(ctx.schema_name, work, db)
