"""
Tenant onboarding.

Onboarding runs in two phases. The tenant row and the superadmin bindings are
committed in the shared schema first; the tenant schema and its tables are
provisioned afterwards. If provisioning fails the first phase is undone by
hand, because DDL on the new schema cannot share the shared-schema
transaction on every backend.
"""

import logging
from typing import Callable, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from database import TENANT_SCHEMA, TenantBase, is_sqlite
from models.role import Role, RoleName
from models.tenant import Tenant, full_schema_name
from models.user_role import UserRole
from models.user_tenant import UserTenant
from schemas.tenant import TenantOnboard
from utils.errors import ApiError, BadRequest, Conflict, NotFound, ErrorMessages
from utils.filters import not_deleted, only_deleted, search, apply_filters, paginate
from utils.tenancy import schema_exists

logger = logging.getLogger(__name__)

OnboardingHook = Callable[[Tenant], None]

DEFAULT_ROLES = {
    RoleName.SUPERADMIN: "Full access to every tenant",
    RoleName.ADMIN: "Manages one tenant's books and users",
    RoleName.ACCOUNTANT: "Records and posts journal entries",
    RoleName.VIEWER: "Read-only access",
}


def ensure_default_roles(db: Session) -> List[Role]:
    """Insert any missing built-in role. Safe to call on every startup."""
    existing = {role.name: role for role in db.query(Role).all()}
    roles = []
    for role_name, description in DEFAULT_ROLES.items():
        role = existing.get(role_name.value)
        if role is None:
            role = Role(
                name=role_name.value,
                display_name=role_name.value.title(),
                description=description,
                is_active=True,
            )
            db.add(role)
            logger.info(f"Seeded role '{role_name.value}'")
        roles.append(role)
    db.commit()
    return roles


def _superadmin_role(db: Session) -> Role:
    role = db.query(Role).filter(
        Role.name == RoleName.SUPERADMIN.value,
        not_deleted(Role),
        Role.is_active.is_(True)
    ).first()
    if role is None:
        raise ApiError(ErrorMessages.SUPERADMIN_ROLE_NOT_FOUND)
    return role


def get_tenant_by_schema_name(db: Session, schema_name: str) -> Optional[Tenant]:
    # Deleted tenants keep their schema, so their names stay taken
    return db.query(Tenant).execution_options(include_deleted=True).filter(
        Tenant.schema_name == schema_name
    ).first()


def create_tenant_schema(db: Session, schema_name: str):
    """Create the namespace and every tenant table inside it."""
    full_name = full_schema_name(schema_name)
    with db.get_bind().begin() as connection:
        if schema_exists(connection, full_name):
            raise Conflict(ErrorMessages.TENANT_SCHEMA_ALREADY_EXISTS)
        if is_sqlite(connection):
            connection.execute(text(f"ATTACH DATABASE ':memory:' AS \"{full_name}\""))
        else:
            connection.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{full_name}"'))
        TenantBase.metadata.create_all(
            connection.execution_options(schema_translate_map={TENANT_SCHEMA: full_name})
        )
    logger.info(f"Provisioned schema {full_name}")


def drop_tenant_schema(db: Session, schema_name: str):
    full_name = full_schema_name(schema_name)
    with db.get_bind().begin() as connection:
        if not schema_exists(connection, full_name):
            return
        if is_sqlite(connection):
            connection.execute(text(f'DETACH DATABASE "{full_name}"'))
        else:
            connection.execute(text(f'DROP SCHEMA IF EXISTS "{full_name}" CASCADE'))
    logger.info(f"Dropped schema {full_name}")


def _bind_superadmins(db: Session, tenant: Tenant) -> int:
    """Give every superadmin, from any tenant, membership of the new tenant."""
    role = _superadmin_role(db)
    user_ids = [
        user_id for (user_id,) in db.query(UserRole.user_id).filter(UserRole.role_id == role.id).distinct().all()
    ]
    for user_id in user_ids:
        db.add(UserTenant(user_id=user_id, tenant_id=tenant.id, is_primary=False))
        db.add(UserRole(user_id=user_id, role_id=role.id, tenant_id=tenant.id))
    return len(user_ids)


def _undo_onboarding(db: Session, tenant: Tenant, drop_schema: bool = True):
    try:
        db.rollback()
        db.query(UserRole).filter(UserRole.tenant_id == tenant.id).delete()
        db.query(UserTenant).filter(UserTenant.tenant_id == tenant.id).delete()
        db_tenant = db.query(Tenant).filter(Tenant.id == tenant.id).first()
        if db_tenant is not None:
            db_tenant.is_active = False
            db_tenant.mark_deleted()
        db.commit()
        if drop_schema:
            drop_tenant_schema(db, tenant.schema_name)
    except Exception:
        db.rollback()
        logger.exception(f"Cleanup after failed onboarding of tenant {tenant.id} did not complete")


def onboard_tenant(db: Session, data: TenantOnboard, created_by: Optional[str] = None,
                   on_onboarded: Optional[OnboardingHook] = None) -> Tenant:
    """
    Register a tenant and provision its isolated schema.

    ``on_onboarded`` is called once the tenant is fully usable; it is a
    best-effort notification and its failures are only logged.
    """
    if not Tenant.validate_schema_name(data.schema_name):
        raise BadRequest(ErrorMessages.INVALID_TENANT_SCHEMA_NAME)
    if get_tenant_by_schema_name(db, data.schema_name) is not None:
        raise Conflict(ErrorMessages.TENANT_SCHEMA_ALREADY_EXISTS)
    if schema_exists(db, full_schema_name(data.schema_name)):
        raise Conflict(ErrorMessages.TENANT_SCHEMA_ALREADY_EXISTS)

    try:
        tenant = Tenant(name=data.name, schema_name=data.schema_name, is_active=True, created_by=created_by)
        db.add(tenant)
        db.flush()
        bound = _bind_superadmins(db, tenant)
        db.commit()
    except Exception:
        db.rollback()
        raise

    try:
        create_tenant_schema(db, tenant.schema_name)
    except Conflict:
        # The namespace belongs to someone else; only the tenant row is ours
        logger.error(f"Schema for tenant {tenant.id} appeared before it could be provisioned")
        _undo_onboarding(db, tenant, drop_schema=False)
        raise
    except Exception:
        logger.error(f"Provisioning schema for tenant {tenant.id} failed; rolling back onboarding")
        _undo_onboarding(db, tenant)
        raise

    logger.info(f"Tenant '{tenant.name}' onboarded as {tenant.full_schema_name} with {bound} superadmin(s) by {created_by}")

    if on_onboarded is not None:
        try:
            on_onboarded(tenant)
        except Exception:
            logger.exception(f"Onboarding notification for tenant {tenant.id} failed")
    return tenant


def get_tenant(db: Session, tenant_id: int) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id, not_deleted(Tenant)).first()
    if tenant is None:
        raise NotFound(ErrorMessages.TENANT_NOT_FOUND)
    return tenant


def get_tenants(db: Session, page: int = 1, limit: int = 20, search_term: Optional[str] = None,
                is_active: Optional[bool] = None):
    query = apply_filters(
        db.query(Tenant).filter(not_deleted(Tenant)),
        search(search_term, Tenant.name, Tenant.schema_name),
        Tenant.is_active.is_(is_active) if is_active is not None else None,
    )
    return paginate(query.order_by(Tenant.name, Tenant.id), page, limit)


def get_user_tenants(db: Session, user_id: str) -> List[Tenant]:
    return db.query(Tenant).join(UserTenant, UserTenant.tenant_id == Tenant.id).filter(
        UserTenant.user_id == user_id,
        Tenant.is_active.is_(True),
        not_deleted(Tenant)
    ).order_by(UserTenant.is_primary.desc(), Tenant.name).all()


def delete_tenant(db: Session, tenant_id: int, user_id: Optional[str] = None) -> Tenant:
    """Deactivate and soft-delete. The schema and its data are kept."""
    tenant = get_tenant(db, tenant_id)
    tenant.is_active = False
    tenant.mark_deleted(user_id)
    tenant.updated_by = user_id
    db.commit()
    logger.info(f"Tenant {tenant.id} deleted by {user_id}")
    return tenant


def restore_tenant(db: Session, tenant_id: int, user_id: Optional[str] = None) -> Tenant:
    tenant = db.query(Tenant).execution_options(include_deleted=True).filter(
        Tenant.id == tenant_id,
        only_deleted(Tenant)
    ).first()
    if tenant is None:
        raise NotFound(ErrorMessages.TENANT_NOT_FOUND_OR_NOT_DELETED)
    if not schema_exists(db, tenant.full_schema_name):
        raise NotFound(ErrorMessages.TENANT_SCHEMA_NOT_FOUND)
    tenant.mark_restored()
    tenant.is_active = True
    tenant.updated_by = user_id
    db.commit()
    logger.info(f"Tenant {tenant.id} restored by {user_id}")
    return tenant
