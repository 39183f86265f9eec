import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models.audit_mixin import utc_now
from models.tax import Tax
from models.tax_exemption import TaxExemption, ExemptionType
from schemas.tax_exemption import TaxExemptionCreate, TaxExemptionUpdate
from utils.errors import BadRequest, NotFound, ErrorMessages
from utils.filters import by_tenant, not_deleted, active, search, apply_filters, apply_sort, paginate
from utils.tenancy import TenantContext, with_tenant_schema

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "contact_id": "contact_id",
    "exemption_type": "exemption_type",
    "certificate_expiry": "certificate_expiry",
    "is_active": "is_active",
    "created_at": "created_at",
}


def _today() -> date:
    return utc_now().date()


def not_expired(today: Optional[date] = None):
    today = today or _today()
    return or_(TaxExemption.certificate_expiry.is_(None), TaxExemption.certificate_expiry >= today)


def _exemptions(db: Session, ctx: TenantContext):
    return db.query(TaxExemption).filter(by_tenant(TaxExemption, ctx.tenant_id), not_deleted(TaxExemption))


def _get_exemption(db: Session, ctx: TenantContext, exemption_id: int) -> TaxExemption:
    exemption = _exemptions(db, ctx).filter(TaxExemption.id == exemption_id).first()
    if exemption is None:
        raise NotFound(ErrorMessages.TAX_EXEMPTION_NOT_FOUND)
    return exemption


def _ensure_tax_exists(db: Session, ctx: TenantContext, tax_id: Optional[int]):
    if tax_id is None:
        return
    found = db.query(Tax.id).filter(Tax.id == tax_id, by_tenant(Tax, ctx.tenant_id), not_deleted(Tax)).first()
    if found is None:
        raise NotFound(ErrorMessages.TAX_NOT_FOUND)


def create_tax_exemption(ctx: TenantContext, exemption: TaxExemptionCreate, db: Optional[Session] = None) -> TaxExemption:
    def work(db: Session):
        _ensure_tax_exists(db, ctx, exemption.tax_id)
        data = exemption.model_dump()
        data["exemption_type"] = ExemptionType(data["exemption_type"]).value
        db_exemption = TaxExemption(**data, tenant_id=ctx.tenant_id, created_by=ctx.user_id)
        db.add(db_exemption)
        db.flush()
        scope = f"tax {db_exemption.tax_id}" if db_exemption.tax_id else "all taxes"
        logger.info(f"Tax exemption for contact {db_exemption.contact_id} on {scope} created by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_exemption

    return with_tenant_schema(ctx.schema_name, work, db)


def get_tax_exemption(ctx: TenantContext, exemption_id: int, db: Optional[Session] = None) -> TaxExemption:
    return with_tenant_schema(ctx.schema_name, lambda db: _get_exemption(db, ctx, exemption_id), db)


def get_tax_exemptions(
    ctx: TenantContext,
    page: int = 1,
    limit: int = 20,
    search_term: Optional[str] = None,
    is_active: Optional[bool] = None,
    contact_id: Optional[int] = None,
    tax_id: Optional[int] = None,
    exemption_type: Optional[str] = None,
    expired: Optional[bool] = None,
    sort: Optional[str] = None,
    order: str = "asc",
    db: Optional[Session] = None,
):
    def work(db: Session):
        today = _today()
        if expired is None:
            expiry = None
        elif expired:
            expiry = TaxExemption.certificate_expiry < today
        else:
            expiry = not_expired(today)
        query = apply_filters(
            _exemptions(db, ctx),
            search(search_term, TaxExemption.certificate_number, TaxExemption.reason),
            TaxExemption.is_active.is_(is_active) if is_active is not None else None,
            TaxExemption.contact_id == contact_id if contact_id is not None else None,
            TaxExemption.tax_id == tax_id if tax_id is not None else None,
            TaxExemption.exemption_type == ExemptionType(exemption_type).value if exemption_type else None,
            expiry,
        )
        return paginate(apply_sort(query, TaxExemption, sort, order, SORT_FIELDS, "created_at"), page, limit)

    return with_tenant_schema(ctx.schema_name, work, db)


def get_contact_exemptions(ctx: TenantContext, contact_id: int, db: Optional[Session] = None) -> List[TaxExemption]:
    """Exemptions currently in force for a contact, newest first."""
    def work(db: Session):
        return _exemptions(db, ctx).filter(
            TaxExemption.contact_id == contact_id,
            active(TaxExemption),
            not_expired()
        ).order_by(TaxExemption.created_at.desc(), TaxExemption.id.desc()).all()

    return with_tenant_schema(ctx.schema_name, work, db)


def is_contact_exempt(ctx: TenantContext, contact_id: int, tax_id: int, db: Optional[Session] = None) -> bool:
    """True when an active, unexpired exemption covers ``tax_id`` or every tax."""
    def work(db: Session):
        exemption = _exemptions(db, ctx).filter(
            TaxExemption.contact_id == contact_id,
            active(TaxExemption),
            not_expired(),
            or_(TaxExemption.tax_id.is_(None), TaxExemption.tax_id == tax_id)
        ).first()
        return exemption is not None

    return with_tenant_schema(ctx.schema_name, work, db)


def update_tax_exemption(ctx: TenantContext, exemption_id: int, update: TaxExemptionUpdate,
                         db: Optional[Session] = None) -> TaxExemption:
    def work(db: Session):
        db_exemption = _get_exemption(db, ctx, exemption_id)
        update_data = update.model_dump(exclude_unset=True)
        if "tax_id" in update_data:
            _ensure_tax_exists(db, ctx, update_data["tax_id"])
        for key, value in update_data.items():
            if value is None and key not in ("tax_id", "certificate_number", "certificate_expiry", "reason"):
                continue
            if key == "exemption_type":
                value = ExemptionType(value).value
            setattr(db_exemption, key, value)
        db_exemption.updated_by = ctx.user_id
        db.flush()
        return db_exemption

    return with_tenant_schema(ctx.schema_name, work, db)


def set_tax_exemption_active(ctx: TenantContext, exemption_id: int, is_active: bool,
                             db: Optional[Session] = None) -> TaxExemption:
    return update_tax_exemption(ctx, exemption_id, TaxExemptionUpdate(is_active=is_active), db)


def delete_tax_exemption(ctx: TenantContext, exemption_id: int, db: Optional[Session] = None) -> TaxExemption:
    def work(db: Session):
        db_exemption = _get_exemption(db, ctx, exemption_id)
        db_exemption.mark_deleted(ctx.user_id)
        db.flush()
        logger.info(f"Tax exemption {db_exemption.id} deleted by user {ctx.user_id} for tenant {ctx.tenant_id}")
        return db_exemption

    return with_tenant_schema(ctx.schema_name, work, db)


def restore_tax_exemption(ctx: TenantContext, exemption_id: int, db: Optional[Session] = None) -> TaxExemption:
    def work(db: Session):
        db_exemption = db.query(TaxExemption).execution_options(include_deleted=True).filter(
            TaxExemption.id == exemption_id,
            by_tenant(TaxExemption, ctx.tenant_id)
        ).first()
        if db_exemption is None:
            raise NotFound(ErrorMessages.TAX_EXEMPTION_NOT_FOUND)
        if db_exemption.deleted_at is None:
            raise BadRequest(ErrorMessages.TAX_EXEMPTION_NOT_DELETED)
        db_exemption.mark_restored()
        db_exemption.updated_by = ctx.user_id
        db.flush()
        return db_exemption

    return with_tenant_schema(ctx.schema_name, work, db)
