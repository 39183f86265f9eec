import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from crud import tax_exemption as tax_exemption_crud
from models.tax import Tax
from models.tax_group import TaxGroup, TaxGroupTax
from schemas.tax import TaxCalculationResult
from schemas.tax_group import TaxGroupCreate, TaxGroupUpdate
from utils.errors import BadRequest, NotFound, ErrorMessages
from utils.filters import by_tenant, not_deleted, active, search, apply_filters, apply_sort, paginate
from utils.tax_calculation import calculate_tax_with_exemptions
from utils.tenancy import TenantContext, with_tenant_schema

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "name": "name",
    "is_active": "is_active",
    "created_at": "created_at",
    "updated_at": "updated_at",
}


def _groups(db: Session, ctx: TenantContext):
    return db.query(TaxGroup).filter(by_tenant(TaxGroup, ctx.tenant_id), not_deleted(TaxGroup))


def _get_group(db: Session, ctx: TenantContext, group_id: int) -> TaxGroup:
    group = _groups(db, ctx).filter(TaxGroup.id == group_id).first()
    if group is None:
        raise NotFound(ErrorMessages.TAX_GROUP_NOT_FOUND)
    return group


def _group_taxes(db: Session, ctx: TenantContext, tax_ids: List[int]) -> List[TaxGroupTax]:
    """Membership rows in the caller's order; that order is the compounding order."""
    found = {
        tax_id for (tax_id,) in db.query(Tax.id).filter(
            Tax.id.in_(tax_ids),
            by_tenant(Tax, ctx.tenant_id),
            not_deleted(Tax)
        ).all()
    }
    if len(found) != len(tax_ids) or set(tax_ids) != found:
        raise BadRequest(ErrorMessages.INVALID_TAX_IDS)
    return [
        TaxGroupTax(tax_id=tax_id, order_index=index, created_by=ctx.user_id)
        for index, tax_id in enumerate(tax_ids)
    ]


def create_tax_group(ctx: TenantContext, group: TaxGroupCreate, db: Optional[Session] = None) -> TaxGroup:
    def work(db: Session):
        group_taxes = _group_taxes(db, ctx, group.tax_ids)
        db_group = TaxGroup(
            **group.model_dump(exclude={"tax_ids"}),
            tenant_id=ctx.tenant_id,
            created_by=ctx.user_id,
        )
        db_group.group_taxes = group_taxes
        db.add(db_group)
        db.flush()
        # Load each member's tax so the group can be rendered after the session closes
        db.refresh(db_group)
        logger.info(f"Tax group '{db_group.name}' with {len(group_taxes)} taxes created by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_group

    return with_tenant_schema(ctx.schema_name, work, db)


def get_tax_group(ctx: TenantContext, group_id: int, db: Optional[Session] = None) -> TaxGroup:
    return with_tenant_schema(ctx.schema_name, lambda db: _get_group(db, ctx, group_id), db)


def get_tax_groups(
    ctx: TenantContext,
    page: int = 1,
    limit: int = 20,
    search_term: Optional[str] = None,
    is_active: Optional[bool] = None,
    sort: Optional[str] = None,
    order: str = "asc",
    db: Optional[Session] = None,
):
    def work(db: Session):
        query = apply_filters(
            _groups(db, ctx),
            search(search_term, TaxGroup.name, TaxGroup.description),
            TaxGroup.is_active.is_(is_active) if is_active is not None else None,
        )
        return paginate(apply_sort(query, TaxGroup, sort, order, SORT_FIELDS, "name"), page, limit)

    return with_tenant_schema(ctx.schema_name, work, db)


def get_active_tax_groups(ctx: TenantContext, db: Optional[Session] = None) -> List[TaxGroup]:
    return with_tenant_schema(
        ctx.schema_name,
        lambda db: _groups(db, ctx).filter(active(TaxGroup)).order_by(TaxGroup.name.asc()).all(),
        db
    )


def update_tax_group(ctx: TenantContext, group_id: int, update: TaxGroupUpdate, db: Optional[Session] = None) -> TaxGroup:
    """Patch a group. A new ``tax_ids`` list replaces the membership and its order."""
    def work(db: Session):
        db_group = _get_group(db, ctx, group_id)
        update_data = update.model_dump(exclude_unset=True)

        for key in ("name", "description", "is_active"):
            if key in update_data and (update_data[key] is not None or key == "description"):
                setattr(db_group, key, update_data[key])

        if update_data.get("tax_ids") is not None:
            group_taxes = _group_taxes(db, ctx, update_data["tax_ids"])
            db_group.group_taxes.clear()
            db.flush()
            db_group.group_taxes.extend(group_taxes)

        db_group.updated_by = ctx.user_id
        db.flush()
        db.refresh(db_group)
        logger.info(f"Tax group {db_group.id} updated by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_group

    return with_tenant_schema(ctx.schema_name, work, db)


def set_tax_group_active(ctx: TenantContext, group_id: int, is_active: bool, db: Optional[Session] = None) -> TaxGroup:
    return update_tax_group(ctx, group_id, TaxGroupUpdate(is_active=is_active), db)


def delete_tax_group(ctx: TenantContext, group_id: int, db: Optional[Session] = None) -> TaxGroup:
    def work(db: Session):
        db_group = _get_group(db, ctx, group_id)
        db_group.mark_deleted(ctx.user_id)
        db.flush()
        logger.info(f"Tax group {db_group.id} deleted by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_group

    return with_tenant_schema(ctx.schema_name, work, db)


def restore_tax_group(ctx: TenantContext, group_id: int, db: Optional[Session] = None) -> TaxGroup:
    def work(db: Session):
        db_group = db.query(TaxGroup).execution_options(include_deleted=True).filter(
            TaxGroup.id == group_id,
            by_tenant(TaxGroup, ctx.tenant_id)
        ).first()
        if db_group is None:
            raise NotFound(ErrorMessages.TAX_GROUP_NOT_FOUND)
        if db_group.deleted_at is None:
            raise BadRequest(ErrorMessages.TAX_GROUP_NOT_DELETED)
        db_group.mark_restored()
        db_group.updated_by = ctx.user_id
        db.flush()
        return db_group

    return with_tenant_schema(ctx.schema_name, work, db)


def calculate_tax_with_group(ctx: TenantContext, group_id: int, amount, contact_id: Optional[int] = None,
                             db: Optional[Session] = None) -> TaxCalculationResult:
    """Apply the group's taxes to ``amount`` in the group's stored order."""
    def work(db: Session):
        group = _get_group(db, ctx, group_id)
        taxes = [tax for tax in group.taxes if tax.deleted_at is None]
        if not taxes:
            raise BadRequest(ErrorMessages.TAX_GROUP_HAS_NO_TAXES)

        def is_exempt(contact, tax_id):
            return tax_exemption_crud.is_contact_exempt(ctx, contact, tax_id, db=db)

        return calculate_tax_with_exemptions(amount, taxes, contact_id, is_exempt)

    return with_tenant_schema(ctx.schema_name, work, db)
