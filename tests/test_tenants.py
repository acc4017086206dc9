"""
Tenant administration API tests (SUPER_ADMIN only).
"""

import pytest

from app.core.constants import UserRole
from app.models.auth import User
from app.models.scheduling import EmailLog
from app.services.tenant_service import slugify


@pytest.fixture()
def super_admin(tenant, user_factory):
    return user_factory(tenant, UserRole.SUPER_ADMIN, email="root@acme.test")


class TestTenantApi:

    def test_create_with_admin(self, client, super_admin, auth_headers):
        res = client.post("/api/v1/tenants", json={
            "name": "Beta Partners",
            "admin": {"email": "lead@beta.test", "first_name": "Lea"},
        }, headers=auth_headers(super_admin))
        assert res.status_code == 201
        data = res.get_json()
        assert data["slug"] == "beta-partners"
        assert data["admin"]["role"] == "ADMIN"
        assert data["admin"]["status"] == "PENDING"
        assert User.query.filter_by(tenant_id=data["id"]).count() == 1
        assert EmailLog.query.filter_by(recipient_email="lead@beta.test").count() == 1

    def test_duplicate_slug(self, client, super_admin, auth_headers):
        res = client.post("/api/v1/tenants", json={"name": "Acme", "slug": "acme"},
                          headers=auth_headers(super_admin))
        assert res.status_code == 409

    def test_bad_slug(self, client, super_admin, auth_headers):
        res = client.post("/api/v1/tenants", json={"name": "Gamma", "slug": "Gamma Co!"},
                          headers=auth_headers(super_admin))
        assert res.status_code == 422

    def test_list_and_detail(self, client, super_admin, project, auth_headers):
        headers = auth_headers(super_admin)
        res = client.get("/api/v1/tenants", headers=headers)
        item = res.get_json()["items"][0]
        assert item["slug"] == "acme"
        assert item["project_count"] == 1

        res = client.get(f"/api/v1/tenants/{item['id']}", headers=headers)
        assert res.get_json()["organization_count"] == 1
        assert client.get("/api/v1/tenants/999", headers=headers).status_code == 404

    def test_admin_is_not_enough(self, client, admin, auth_headers):
        assert client.get("/api/v1/tenants", headers=auth_headers(admin)).status_code == 403

    def test_super_admin_registers_into_other_tenant(self, client, super_admin, tenant_factory, auth_headers):
        other = tenant_factory(name="Delta", slug="delta")
        res = client.post("/api/v1/auth/register", json={
            "email": "ops@delta.test", "first_name": "Ops", "role": "CONSULTANT", "tenant_id": other.id,
        }, headers=auth_headers(super_admin))
        assert res.status_code == 201
        assert res.get_json()["tenant_id"] == other.id


@pytest.mark.parametrize("name,slug", [
    ("Acme Consulting", "acme-consulting"),
    ("  Ação & Cia  ", "a-o-cia"),
    ("", ""),
])
def test_slugify(name, slug):
    assert slugify(name) == slug
