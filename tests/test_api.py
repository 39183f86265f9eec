"""HTTP surface: auth, tenant resolution, error rendering."""

import uuid

import pytest

from crud import tenant as tenant_crud
from models.user_tenant import UserTenant

from conftest import SUPERADMIN_USER, TEST_USER, auth_headers


@pytest.fixture
def member(db, tenant):
    db.add(UserTenant(user_id=TEST_USER, tenant_id=tenant.id, is_primary=True))
    db.commit()
    return tenant


def accountant(tenant):
    return auth_headers(tenant, roles=["accountant"])


def create_account(client, tenant, name, account_type):
    response = client.post(
        "/chart-of-accounts/",
        json={"account_name": name, "account_type": account_type},
        headers=accountant(tenant),
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestAccess:

    def test_missing_token(self, client, tenant):
        response = client.get("/chart-of-accounts/", headers={"X-Tenant-ID": str(tenant.id)})
        assert response.status_code == 401

    def test_garbage_token(self, client, tenant):
        headers = {"Authorization": "Bearer not-a-jwt", "X-Tenant-ID": str(tenant.id)}
        assert client.get("/chart-of-accounts/", headers=headers).status_code == 401

    def test_non_member_is_forbidden(self, client, tenant):
        response = client.get("/chart-of-accounts/", headers=auth_headers(tenant, sub="stranger"))
        assert response.status_code == 403
        assert response.json() == {"detail": "User is not a member of this tenant", "code": "USER_NOT_MEMBER_OF_TENANT"}

    def test_unknown_tenant(self, client):
        response = client.get("/chart-of-accounts/", headers={
            **auth_headers(roles=["superadmin"]), "X-Tenant-ID": "999999"
        })
        assert response.status_code == 404
        assert response.json()["code"] == "TENANT_NOT_FOUND"

    def test_viewer_cannot_write(self, client, member):
        response = client.post(
            "/chart-of-accounts/",
            json={"account_name": "Cash", "account_type": "asset"},
            headers=auth_headers(member, roles=["viewer"]),
        )
        assert response.status_code == 403

    def test_superadmin_needs_no_membership(self, client, tenant):
        response = client.get("/chart-of-accounts/", headers=auth_headers(tenant, sub=SUPERADMIN_USER, roles=["superadmin"]))
        assert response.status_code == 200
        assert response.json() == {"items": [], "total": 0, "page": 1, "limit": 20}


class TestJournalFlow:

    def test_create_post_reverse(self, client, member):
        cash = create_account(client, member, "Cash", "asset")
        sales = create_account(client, member, "Sales", "revenue")

        response = client.post("/journal-entries/", headers=accountant(member), json={
            "entry_date": "2024-03-15",
            "description": "Cash sale",
            "lines": [
                {"account_id": cash["id"], "debit": "100.00", "description": "Cash received"},
                {"account_id": sales["id"], "credit": "100.00", "description": "Sale"},
            ],
        })
        assert response.status_code == 201, response.text
        entry = response.json()
        assert entry["status"] == "draft"

        response = client.post(f"/journal-entries/{entry['id']}/post", headers=accountant(member))
        assert response.status_code == 200
        assert response.json()["status"] == "posted"

        response = client.post(f"/journal-entries/{entry['id']}/post", headers=accountant(member))
        assert response.status_code == 409
        assert response.json()["code"] == "JOURNAL_ENTRY_ALREADY_POSTED"

        account = client.get(f"/chart-of-accounts/{cash['id']}", headers=accountant(member)).json()
        assert account["current_balance"] == "100.00"

        history = client.get(f"/balance-history/journal-entry/{entry['id']}", headers=accountant(member)).json()
        assert len(history) == 2

        # accountants may post but not reverse
        response = client.post(f"/journal-entries/{entry['id']}/reverse", headers=accountant(member),
                               json={"reversal_date": "2024-03-31"})
        assert response.status_code == 403

        response = client.post(f"/journal-entries/{entry['id']}/reverse",
                               headers=auth_headers(member, roles=["admin"]),
                               json={"reversal_date": "2024-03-31"})
        assert response.status_code == 201, response.text
        assert response.json()["is_reversing"] is True

        as_of = client.get(f"/balance-history/account/{cash['id']}/as-of", params={"as_of": "2024-03-31"},
                           headers=accountant(member))
        assert as_of.json()["balance"] == "0.00"

    def test_unbalanced_entry_is_a_bad_request(self, client, member):
        cash = create_account(client, member, "Cash", "asset")
        sales = create_account(client, member, "Sales", "revenue")
        response = client.post("/journal-entries/", headers=accountant(member), json={
            "entry_date": "2024-03-15",
            "lines": [
                {"account_id": cash["id"], "debit": "100.00"},
                {"account_id": sales["id"], "credit": "90.00"},
            ],
        })
        assert response.status_code == 400
        assert response.json()["code"] == "JOURNAL_ENTRY_NOT_BALANCED"

    def test_list_filters_by_status(self, client, member):
        response = client.get("/journal-entries/", params={"status": "posted"}, headers=accountant(member))
        assert response.status_code == 200
        assert response.json()["total"] == 0


class TestTaxesApi:

    def test_calculate(self, client, member):
        headers = accountant(member)
        vat = client.post("/taxes/", json={"name": "VAT", "rate": "10"}, headers=headers).json()
        levy = client.post("/taxes/", json={"name": "Levy", "type": "compound", "rate": "5"}, headers=headers).json()

        response = client.post("/taxes/calculate", json={"amount": "100", "tax_ids": [vat["id"], levy["id"]]},
                               headers=headers)

        assert response.status_code == 200, response.text
        assert [item["tax_id"] for item in response.json()["tax_breakdown"]] == [levy["id"], vat["id"]]


class TestTenantsApi:

    @pytest.fixture
    def schema_name(self, db):
        name = f"api_{uuid.uuid4().hex[:8]}"
        yield name
        db.rollback()
        tenant_crud.drop_tenant_schema(db, name)

    def test_only_superadmins_onboard(self, client, schema_name):
        payload = {"name": "Globex", "schema_name": schema_name}

        response = client.post("/tenants/", json=payload, headers=auth_headers(roles=["admin"]))
        assert response.status_code == 403

        response = client.post("/tenants/", json=payload,
                               headers=auth_headers(sub=SUPERADMIN_USER, roles=["superadmin"]))
        assert response.status_code == 201, response.text
        assert response.json()["schema_name"] == schema_name

        response = client.post("/tenants/", json=payload,
                               headers=auth_headers(sub=SUPERADMIN_USER, roles=["superadmin"]))
        assert response.status_code == 409

    def test_my_tenants(self, client, member):
        response = client.get("/tenants/mine", headers=auth_headers())
        assert member.id in [tenant["id"] for tenant in response.json()]


class TestImportApi:

    def test_sample_download(self, client):
        response = client.get("/chart-of-accounts/sample")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert response.content[:2] == b"PK"

    def test_import_fields(self, client):
        fields = client.get("/chart-of-accounts/import-fields").json()
        assert {"account_name", "account_type"} <= {field["key"] for field in fields}


def test_health(client):
    assert client.get("/").status_code == 200
