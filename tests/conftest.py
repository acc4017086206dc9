"""
Shared pytest fixtures for the diagnostics platform test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite)
    - _setup_db: table creation/teardown (session-scoped)
    - session: per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client
    - tenant / admin / consultant / organization / client_user / project
    - auth_headers(user): Authorization header for a user
    - cron_headers: X-Cron-Secret header for scheduler endpoints
    - *_factory: the make_* helpers, for tests that need extra rows
"""

import shutil
from functools import lru_cache

import pytest

from app import create_app
from app.core.constants import UserRole, UserStatus
from app.models import db as _db
from app.models.auth import Tenant, User
from app.models.organization import Organization
from app.services import project_service
from app.services.jwt_service import generate_access_token
from app.utils.crypto import hash_password

TEST_PASSWORD = "correct-horse-1"


@lru_cache(maxsize=None)
def _hashed(password):
    return hash_password(password)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    yield application
    shutil.rmtree(application.config["STORAGE_ROOT"], ignore_errors=True)


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


def make_tenant(name="Acme Consulting", slug="acme"):
    tenant = Tenant(name=name, slug=slug, is_active=True)
    _db.session.add(tenant)
    _db.session.commit()
    return tenant


def make_user(tenant, role=UserRole.CONSULTANT, email=None, organization=None,
              status=UserStatus.ACTIVE, password=TEST_PASSWORD, first_name="Test"):
    role = UserRole(role).value
    user = User(
        tenant_id=tenant.id,
        organization_id=organization.id if organization else None,
        email=email or f"{role.lower()}@{tenant.slug}.test",
        password_hash=_hashed(password) if password else None,
        first_name=first_name,
        last_name="User",
        role=role,
        status=UserStatus(status).value,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def make_organization(tenant, name="Globex", **fields):
    org = Organization(tenant_id=tenant.id, name=name, **fields)
    _db.session.add(org)
    _db.session.commit()
    return org


def make_project(tenant, organization, *, consultant=None, client=None, settings=None, name="Diagnostic 2026"):
    return project_service.create_project(
        tenant.id,
        {
            "name": name,
            "organization_id": organization.id,
            "consultant_id": consultant.id if consultant else None,
            "client_user_id": client.id if client else None,
            "settings": settings or {},
        },
        created_by=consultant.id if consultant else None,
    )


def headers_for(user):
    return {"Authorization": f"Bearer {generate_access_token(user)}"}


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def tenant():
    return make_tenant()


@pytest.fixture()
def admin(tenant):
    return make_user(tenant, UserRole.ADMIN)


@pytest.fixture()
def consultant(tenant):
    return make_user(tenant, UserRole.CONSULTANT)


@pytest.fixture()
def organization(tenant):
    return make_organization(tenant)


@pytest.fixture()
def client_user(tenant, organization):
    return make_user(tenant, UserRole.CLIENT, organization=organization, email="client@globex.test")


@pytest.fixture()
def project(tenant, organization, consultant, client_user):
    return make_project(tenant, organization, consultant=consultant, client=client_user)


@pytest.fixture()
def auth_headers():
    return headers_for


@pytest.fixture()
def cron_headers(app):
    return {"X-Cron-Secret": app.config["CRON_SECRET"]}


@pytest.fixture()
def tenant_factory():
    return make_tenant


@pytest.fixture()
def user_factory():
    return make_user


@pytest.fixture()
def organization_factory():
    return make_organization


@pytest.fixture()
def project_factory():
    return make_project
