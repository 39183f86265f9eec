"""
Pytest fixtures for the ledger backend test suite.

Provides:
- An in-memory SQLite database with the shared tables created once
- A freshly onboarded tenant (attached database) per test
- A TenantContext and account/entry factories bound to that tenant
- A FastAPI TestClient and bearer tokens for API tests

Environment Variables:
- DATABASE_URL: forced to ``sqlite://`` before the application is imported.
"""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "ledger-test-logs"))
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import uuid
from datetime import date
from decimal import Decimal

import pytest
from jose import jwt

import database
import models  # noqa: F401
from crud import tenant as tenant_crud
from crud import chart_of_accounts as coa_crud
from crud import journal_entry as journal_entry_crud
from models.role import Role, RoleName
from models.user_role import UserRole
from schemas.chart_of_accounts import ChartOfAccountsCreate
from schemas.journal_entry import JournalEntryCreate
from schemas.journal_entry_line import JournalEntryLineCreate
from schemas.tenant import TenantOnboard
from utils.auth_utils import JWT_ALGORITHM, JWT_SECRET_KEY
from utils.tenancy import TenantContext

SUPERADMIN_USER = "root-admin"
TEST_USER = "user-1"


@pytest.fixture(scope="session", autouse=True)
def _shared_tables():
    database.Base.metadata.create_all(bind=database.engine)
    with database.SessionLocal() as db:
        tenant_crud.ensure_default_roles(db)


@pytest.fixture
def db():
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def onboard(db):
    """Factory that onboards tenants and detaches their schemas afterwards."""
    created = []

    def _onboard(name="Acme Books", schema_name=None, **kwargs):
        schema_name = schema_name or f"acme_{uuid.uuid4().hex[:8]}"
        tenant = tenant_crud.onboard_tenant(db, TenantOnboard(name=name, schema_name=schema_name), **kwargs)
        created.append(tenant.schema_name)
        return tenant

    yield _onboard

    db.rollback()
    # SQLite caps the number of attached databases, so give them back
    for schema_name in created:
        tenant_crud.drop_tenant_schema(db, schema_name)


@pytest.fixture
def tenant(onboard):
    return onboard()


@pytest.fixture
def ctx(tenant):
    return TenantContext(
        tenant_id=tenant.id,
        schema_name=tenant.schema_name,
        user_id=TEST_USER,
        tenant_name=tenant.name,
    )


@pytest.fixture
def make_account(ctx):
    def _make(account_type="asset", name=None, **kwargs):
        account = ChartOfAccountsCreate(
            account_name=name or f"{account_type.title()} account",
            account_type=account_type,
            **kwargs,
        )
        return coa_crud.create_account(ctx, account)

    return _make


@pytest.fixture
def cash(make_account):
    return make_account("asset", "Cash")


@pytest.fixture
def revenue(make_account):
    return make_account("revenue", "Sales")


def line(account_id, debit="0", credit="0", description=None):
    return JournalEntryLineCreate(
        account_id=account_id,
        debit=Decimal(debit),
        credit=Decimal(credit),
        description=description,
    )


@pytest.fixture
def make_entry(ctx):
    """Draft entry debiting ``debit_account`` and crediting ``credit_account``."""
    def _make(debit_account, credit_account, amount="100.00", entry_date=date(2024, 3, 15), **kwargs):
        entry = JournalEntryCreate(
            entry_date=entry_date,
            description=kwargs.pop("description", "Cash sale"),
            lines=[
                line(debit_account.id, debit=amount, description="Cash received"),
                line(credit_account.id, credit=amount, description="Sale"),
            ],
            **kwargs,
        )
        return journal_entry_crud.create_journal_entry(ctx, entry)

    return _make


def grant_superadmin(db, user_id, tenant):
    role = db.query(Role).filter(Role.name == RoleName.SUPERADMIN.value).one()
    db.add(UserRole(user_id=user_id, role_id=role.id, tenant_id=tenant.id))
    db.commit()


def make_token(sub=TEST_USER, roles=None):
    return jwt.encode({"sub": sub, "roles": roles or []}, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def auth_headers(tenant=None, sub=TEST_USER, roles=None):
    headers = {"Authorization": f"Bearer {make_token(sub, roles)}"}
    if tenant is not None:
        headers["X-Tenant-ID"] = str(tenant.id)
    return headers


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    import main

    with TestClient(main.app) as test_client:
        yield test_client
