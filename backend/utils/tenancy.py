"""
Tenant scoping.

``with_tenant_schema`` is the only place that knows how a tenant schema is
made active on a connection. Everything else receives a ``TenantContext``
and a session that has already been scoped.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from fastapi import Depends, Header
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

import database
from database import TENANT_SCHEMA, get_db
from models.tenant import Tenant, SCHEMA_NAME_PATTERN, full_schema_name
from models.user_tenant import UserTenant
from models.role import RoleName
from utils.auth_utils import get_current_user, get_user_identifier, get_user_roles
from utils.errors import BadRequest, Forbidden, NotFound, ErrorMessages

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TenantContext:
    """Who is acting, and on which tenant. Built once per request."""
    tenant_id: int
    schema_name: str
    user_id: Optional[str] = None
    tenant_name: Optional[str] = None


def schema_exists(db, schema_name: str) -> bool:
    """``db`` may be a Session or a Connection."""
    bind = db.connection() if isinstance(db, Session) else db
    return schema_name in inspect(bind).get_schema_names()


def with_tenant_schema(schema_name: str, work: Callable[[Session], T], db: Optional[Session] = None) -> T:
    """
    Run ``work`` inside one transaction scoped to a tenant schema.

    Tenant tables are declared under a placeholder schema that is translated
    to the real one on this transaction's connection; on PostgreSQL the
    search path is also set for the transaction only. Commits when ``work``
    returns, rolls back and re-raises on any error.

    A caller that already holds a scoped session passes it as ``db``; it is
    used as-is, with no new transaction and no commit.
    """
    if db is not None:
        return work(db)

    full_name = full_schema_name(schema_name)
    if not SCHEMA_NAME_PATTERN.match(full_name):
        raise BadRequest(ErrorMessages.INVALID_TENANT_SCHEMA_NAME)

    db = database.SessionLocal()
    try:
        connection = db.connection(
            execution_options={"schema_translate_map": {TENANT_SCHEMA: full_name}}
        )
        if not schema_exists(db, full_name):
            raise NotFound(ErrorMessages.TENANT_SCHEMA_NOT_FOUND)
        if connection.dialect.name == "postgresql":
            # Identifier already matched SCHEMA_NAME_PATTERN above
            connection.execute(text(f'SET LOCAL search_path TO "{full_name}", public'))
        result = work(db)
        db.commit()
        return result
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_tenant_id(x_tenant_id: str = Header(...)) -> int:
    if not x_tenant_id:
        raise BadRequest(ErrorMessages.TENANT_CONTEXT_REQUIRED)
    try:
        return int(x_tenant_id)
    except ValueError:
        raise BadRequest(ErrorMessages.TENANT_CONTEXT_REQUIRED, "X-Tenant-ID header must be a tenant id")


def get_tenant_context(
    tenant_id: int = Depends(get_tenant_id),
    user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TenantContext:
    """
    Resolve the X-Tenant-ID header into a TenantContext for the current user.

    Superadmins may act on any active tenant; everyone else needs a membership.
    """
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if tenant is None or not tenant.is_active:
        raise NotFound(ErrorMessages.TENANT_NOT_FOUND)

    user_id = get_user_identifier(user)
    if RoleName.SUPERADMIN.value not in get_user_roles(user):
        membership = db.query(UserTenant).filter(
            UserTenant.tenant_id == tenant.id,
            UserTenant.user_id == user_id
        ).first()
        if membership is None:
            logger.warning(f"User {user_id} denied access to tenant {tenant.id}")
            raise Forbidden(ErrorMessages.USER_NOT_MEMBER_OF_TENANT)

    return TenantContext(
        tenant_id=tenant.id,
        schema_name=tenant.schema_name,
        user_id=user_id,
        tenant_name=tenant.name,
    )
