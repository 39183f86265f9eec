"""Schema routing and tenant onboarding."""

import pytest
from pydantic import ValidationError

from crud import chart_of_accounts as coa_crud
from crud import tenant as tenant_crud
from models.chart_of_accounts import ChartOfAccounts
from models.tenant import Tenant, full_schema_name
from models.user_role import UserRole
from models.user_tenant import UserTenant
from schemas.chart_of_accounts import ChartOfAccountsCreate
from schemas.tenant import TenantOnboard
from utils.errors import BadRequest, Conflict, ErrorMessages, NotFound
from utils.tenancy import TenantContext, schema_exists, with_tenant_schema

from conftest import grant_superadmin


class TestWithTenantSchema:
    """Units of work run against exactly one tenant schema."""

    def test_unknown_schema_fails_before_work_runs(self):
        calls = []
        with pytest.raises(NotFound) as exc:
            with_tenant_schema("does_not_exist", lambda db: calls.append(db))
        assert exc.value.code == "TENANT_SCHEMA_NOT_FOUND"
        assert calls == []

    def test_invalid_schema_name_is_rejected(self):
        with pytest.raises(BadRequest):
            with_tenant_schema("Robert'); DROP TABLE tenants;--", lambda db: None)

    def test_prefix_is_applied_once(self, tenant):
        count = with_tenant_schema(f"tenant_{tenant.schema_name}", lambda db: db.query(ChartOfAccounts).count())
        assert count == 0

    def test_error_in_work_rolls_everything_back(self, ctx):
        def work(db):
            coa_crud.create_account(ctx, ChartOfAccountsCreate(account_name="Cash", account_type="asset"), db=db)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            with_tenant_schema(ctx.schema_name, work)

        items, total = coa_crud.get_accounts(ctx)
        assert total == 0

    def test_tenants_do_not_see_each_other(self, onboard):
        first = onboard(name="First")
        second = onboard(name="Second")
        first_ctx = TenantContext(tenant_id=first.id, schema_name=first.schema_name, user_id="u")
        second_ctx = TenantContext(tenant_id=second.id, schema_name=second.schema_name, user_id="u")

        coa_crud.create_account(first_ctx, ChartOfAccountsCreate(account_name="Cash", account_type="asset"))

        assert coa_crud.get_accounts(first_ctx)[1] == 1
        assert coa_crud.get_accounts(second_ctx)[1] == 0


class TestOnboarding:

    def test_onboard_creates_tenant_and_schema(self, db, onboard):
        tenant = onboard(name="Northwind", created_by="root")

        stored = db.query(Tenant).filter(Tenant.id == tenant.id).one()
        assert stored.is_active
        assert stored.full_schema_name == f"tenant_{tenant.schema_name}"

        ctx = TenantContext(tenant_id=tenant.id, schema_name=tenant.schema_name)
        assert coa_crud.get_accounts(ctx)[1] == 0

    def test_superadmins_are_bound_to_new_tenants(self, db, onboard):
        first = onboard()
        grant_superadmin(db, "boss", first)

        second = onboard()

        assert db.query(UserTenant).filter(UserTenant.tenant_id == second.id, UserTenant.user_id == "boss").count() == 1
        assert db.query(UserRole).filter(UserRole.tenant_id == second.id, UserRole.user_id == "boss").count() == 1

    def test_duplicate_schema_name_conflicts(self, onboard):
        tenant = onboard()
        with pytest.raises(Conflict):
            onboard(schema_name=tenant.schema_name)

    def test_invalid_schema_name_is_rejected(self, db):
        data = TenantOnboard.model_construct(name="Bad", schema_name="9lives")
        with pytest.raises(BadRequest):
            tenant_crud.onboard_tenant(db, data)

    @pytest.mark.parametrize("schema_name", ["tenant_books", "a" * 57])
    def test_names_that_cannot_map_to_their_own_schema(self, schema_name):
        assert not Tenant.validate_schema_name(schema_name)
        with pytest.raises(ValidationError):
            TenantOnboard(name="Bad", schema_name=schema_name)

    def test_longest_name_fits_postgres_identifiers(self):
        name = "a" * 56
        assert Tenant.validate_schema_name(name)
        assert len(full_schema_name(name)) == 63

    def test_prefixed_name_leaves_existing_tenant_alone(self, db, tenant, ctx):
        coa_crud.create_account(ctx, ChartOfAccountsCreate(account_name="Cash", account_type="asset"))

        data = TenantOnboard.model_construct(name="Copycat", schema_name=f"tenant_{tenant.schema_name}")
        with pytest.raises(BadRequest):
            tenant_crud.onboard_tenant(db, data)

        assert coa_crud.get_accounts(ctx)[1] == 1

    def test_existing_schema_without_tenant_conflicts(self, db):
        tenant_crud.create_tenant_schema(db, "orphan_books")
        try:
            with pytest.raises(Conflict):
                tenant_crud.onboard_tenant(db, TenantOnboard(name="Orphan", schema_name="orphan_books"))

            assert tenant_crud.get_tenant_by_schema_name(db, "orphan_books") is None
            assert schema_exists(db, "tenant_orphan_books")
        finally:
            db.rollback()
            tenant_crud.drop_tenant_schema(db, "orphan_books")

    def test_schema_taken_during_onboarding_is_not_dropped(self, db, monkeypatch):
        dropped = []

        def taken(db, schema_name):
            raise Conflict(ErrorMessages.TENANT_SCHEMA_ALREADY_EXISTS)

        monkeypatch.setattr(tenant_crud, "create_tenant_schema", taken)
        monkeypatch.setattr(tenant_crud, "drop_tenant_schema", lambda db, schema_name: dropped.append(schema_name))

        with pytest.raises(Conflict):
            tenant_crud.onboard_tenant(db, TenantOnboard(name="Late", schema_name="late_books"))

        assert dropped == []
        tenant = tenant_crud.get_tenant_by_schema_name(db, "late_books")
        assert tenant.deleted_at is not None
        assert not tenant.is_active

    def test_failed_provisioning_is_undone(self, db, monkeypatch):
        def fail(db, schema_name):
            raise RuntimeError("disk full")

        monkeypatch.setattr(tenant_crud, "create_tenant_schema", fail)

        with pytest.raises(RuntimeError):
            tenant_crud.onboard_tenant(db, TenantOnboard(name="Doomed", schema_name="doomed_books"))

        tenant = db.query(Tenant).execution_options(include_deleted=True).filter(
            Tenant.schema_name == "doomed_books"
        ).one()
        assert tenant.deleted_at is not None
        assert not tenant.is_active
        assert db.query(UserTenant).filter(UserTenant.tenant_id == tenant.id).count() == 0

    def test_notification_failure_does_not_fail_onboarding(self, onboard, caplog):
        def notify(tenant):
            raise RuntimeError("mail server down")

        tenant = onboard(on_onboarded=notify)

        assert tenant.id is not None
        assert "Onboarding notification" in caplog.text

    def test_delete_and_restore_tenant(self, db, tenant):
        tenant_crud.delete_tenant(db, tenant.id, "root")
        with pytest.raises(NotFound):
            tenant_crud.get_tenant(db, tenant.id)

        restored = tenant_crud.restore_tenant(db, tenant.id, "root")
        assert restored.is_active
        assert restored.deleted_at is None
