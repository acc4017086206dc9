"""
Auth tests: password hashing, JWT, login, registration and password reset.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.core.constants import UserRole, UserStatus
from app.core.exceptions import UnauthorizedError, ValidationError
from app.models import db
from app.models.scheduling import EmailLog
from app.services import auth_service
from app.services.jwt_service import decode_access_token, generate_access_token
from app.utils.crypto import hash_password, verify_password

PASSWORD = "correct-horse-1"  # set by the conftest user factory


# ═══════════════════════════════════════════════════════════════
# Crypto / JWT
# ═══════════════════════════════════════════════════════════════

class TestCrypto:

    def test_hash_and_verify(self):
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_without_hash(self):
        assert not verify_password("anything", None)


class TestJWT:

    def test_token_carries_scope(self, client_user):
        payload = decode_access_token(generate_access_token(client_user))
        assert payload["sub"] == str(client_user.id)
        assert payload["tenant_id"] == client_user.tenant_id
        assert payload["organization_id"] == client_user.organization_id
        assert payload["role"] == "CLIENT"

    def test_tampered_token_rejected(self, consultant):
        now = datetime.now(timezone.utc)
        forged = jwt.encode(
            {"sub": str(consultant.id), "type": "access", "iat": now, "exp": now + timedelta(hours=1)},
            "not-the-server-secret", algorithm="HS256",
        )
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(forged)

    def test_bad_token_is_anonymous(self, client):
        res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401


# ═══════════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_success(self, client, consultant):
        res = client.post("/api/v1/auth/login", json={"email": consultant.email.upper(), "password": PASSWORD})
        assert res.status_code == 200
        data = res.get_json()
        assert data["token_type"] == "Bearer"
        assert data["user"]["id"] == consultant.id

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.get_json()["email"] == consultant.email

    def test_wrong_password(self, client, consultant):
        res = client.post("/api/v1/auth/login", json={"email": consultant.email, "password": "nope-nope"})
        assert res.status_code == 401
        assert res.get_json()["error"]["message"] == "Invalid credentials"

    def test_pending_user_cannot_login(self, tenant, user_factory):
        user_factory(tenant, UserRole.CONSULTANT, email="p@acme.test", status=UserStatus.PENDING)
        with pytest.raises(UnauthorizedError):
            auth_service.authenticate("p@acme.test", PASSWORD)

    def test_same_email_in_two_tenants_needs_slug(self, tenant, tenant_factory, user_factory):
        other = tenant_factory(name="Rival", slug="rival")
        user_factory(tenant, email="dup@mail.test")
        user_factory(other, email="dup@mail.test")
        with pytest.raises(ValidationError):
            auth_service.authenticate("dup@mail.test", PASSWORD)

        result = auth_service.authenticate("dup@mail.test", PASSWORD, tenant_slug="rival")
        assert result["user"]["tenant_id"] == other.id

    def test_inactive_tenant_refused(self, tenant, consultant):
        tenant.is_active = False
        db.session.commit()
        with pytest.raises(UnauthorizedError):
            auth_service.authenticate(consultant.email, PASSWORD)

    def test_missing_fields(self, client):
        res = client.post("/api/v1/auth/login", json={"email": "x@y.test"})
        assert res.status_code == 422


# ═══════════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════════

class TestRegister:

    def test_admin_registers_pending_client(self, client, admin, organization, auth_headers):
        res = client.post("/api/v1/auth/register", json={
            "email": "Maria@Globex.test", "first_name": "Maria", "role": "CLIENT",
            "organization_id": organization.id,
        }, headers=auth_headers(admin))
        assert res.status_code == 201
        data = res.get_json()
        assert data["email"] == "maria@globex.test"
        assert data["status"] == "PENDING"
        assert EmailLog.query.filter_by(template_name="welcome", recipient_email="maria@globex.test").count() == 1

    def test_password_makes_account_active(self, client, admin, auth_headers):
        res = client.post("/api/v1/auth/register", json={
            "email": "c2@acme.test", "first_name": "Carl", "role": "CONSULTANT", "password": "long-enough-1",
        }, headers=auth_headers(admin))
        assert res.get_json()["status"] == "ACTIVE"
        assert EmailLog.query.count() == 0

    def test_client_requires_organization(self, client, admin, auth_headers):
        res = client.post("/api/v1/auth/register", json={
            "email": "c3@acme.test", "first_name": "Cleo", "role": "CLIENT",
        }, headers=auth_headers(admin))
        assert res.status_code == 422

    def test_duplicate_email(self, client, admin, consultant, auth_headers):
        res = client.post("/api/v1/auth/register", json={
            "email": consultant.email, "first_name": "Copy", "role": "CONSULTANT",
        }, headers=auth_headers(admin))
        assert res.status_code == 409

    def test_consultant_cannot_register(self, client, consultant, auth_headers):
        res = client.post("/api/v1/auth/register", json={
            "email": "x@acme.test", "first_name": "X", "role": "CONSULTANT",
        }, headers=auth_headers(consultant))
        assert res.status_code == 403

    def test_admin_cannot_create_super_admin(self, client, admin, auth_headers):
        res = client.post("/api/v1/auth/register", json={
            "email": "root@acme.test", "first_name": "Root", "role": "SUPER_ADMIN",
        }, headers=auth_headers(admin))
        assert res.status_code == 403

    def test_short_password(self, client, admin, auth_headers):
        res = client.post("/api/v1/auth/register", json={
            "email": "s@acme.test", "first_name": "S", "role": "CONSULTANT", "password": "short",
        }, headers=auth_headers(admin))
        assert res.status_code == 422


# ═══════════════════════════════════════════════════════════════
# Password reset
# ═══════════════════════════════════════════════════════════════

class TestPasswordReset:

    def test_forgot_password_always_200(self, client):
        res = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@nowhere.test"})
        assert res.status_code == 200
        assert EmailLog.query.count() == 0

    def test_reset_flow_activates_pending_user(self, tenant, organization):
        user, raw = auth_service.register_user(tenant.id, {
            "email": "new@globex.test", "first_name": "New", "role": "CLIENT",
            "organization_id": organization.id,
        }, actor_role="ADMIN")
        assert user.status == "PENDING"

        auth_service.reset_password(raw, "brand-new-pass")
        db.session.refresh(user)
        assert user.status == "ACTIVE"
        assert user.reset_token is None
        assert verify_password("brand-new-pass", user.password_hash)

    def test_token_is_single_use(self, client, consultant):
        client.post("/api/v1/auth/forgot-password", json={"email": consultant.email})
        assert EmailLog.query.filter_by(template_name="password_reset").count() == 1
        raw = auth_service.issue_activation_token(consultant)
        db.session.commit()

        res = client.post("/api/v1/auth/reset-password", json={"token": raw, "password": "another-pass-1"})
        assert res.status_code == 200
        res = client.post("/api/v1/auth/reset-password", json={"token": raw, "password": "another-pass-2"})
        assert res.status_code == 422

    def test_invalid_token(self, client):
        res = client.post("/api/v1/auth/reset-password", json={"token": "bogus", "password": "long-enough-1"})
        assert res.status_code == 422
        assert res.get_json()["error"]["details"] == {"token": "invalid"}