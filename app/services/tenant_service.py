"""
Tenant Service: consulting firms hosted on the platform.

Only SUPER_ADMIN reaches these functions (enforced by the blueprint).
A tenant can be created together with its first ADMIN user; that user gets
an activation link when no password is supplied.
"""

import logging
import re

from sqlalchemy import func

from app.core.constants import UserRole
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.auth import Tenant, User
from app.models.organization import Organization
from app.models.project import Project
from app.services import auth_service
from app.utils.helpers import log_and_continue

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")


def list_tenants(page: int = 1, per_page: int = 20, search: str | None = None) -> dict:
    """
    Return a paginated list of tenants with user and project counts.

    Returns:
        Dict with keys: items, total, page, per_page.
    """
    query = db.select(Tenant).order_by(Tenant.created_at.desc(), Tenant.id.desc())
    if search:
        query = query.where(Tenant.name.ilike(f"%{search}%") | Tenant.slug.ilike(f"%{search}%"))

    total = db.session.scalar(db.select(func.count()).select_from(query.subquery()))
    tenants = db.session.execute(
        query.offset((page - 1) * per_page).limit(per_page)
    ).scalars().all()

    items = []
    for t in tenants:
        items.append({
            **t.to_dict(),
            "user_count": db.session.scalar(
                db.select(func.count()).where(User.tenant_id == t.id)) or 0,
            "project_count": db.session.scalar(
                db.select(func.count()).where(Project.tenant_id == t.id)) or 0,
        })
    return {"items": items, "total": total, "page": page, "per_page": per_page}


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant", tenant_id)
    return tenant


def tenant_detail(tenant: Tenant) -> dict:
    return {
        **tenant.to_dict(),
        "user_count": tenant.users.count(),
        "organization_count": Organization.query.filter_by(tenant_id=tenant.id).count(),
        "project_count": Project.query.filter_by(tenant_id=tenant.id).count(),
    }


def create_tenant(data: dict) -> tuple[Tenant, User | None]:
    """
    Create a tenant and, when ``data["admin"]`` is given, its first ADMIN.

    Raises:
        ValidationError: missing name or malformed slug.
        ConflictError: slug already in use.
    """
    name = (data.get("name") or "").strip()
    slug = (data.get("slug") or "").strip().lower() or slugify(name)
    errors = {}
    if not name:
        errors["name"] = "required"
    if not slug or not _SLUG_RE.match(slug):
        errors["slug"] = "lowercase letters, digits and dashes only"
    if errors:
        raise ValidationError("Invalid tenant data", details=errors)

    if db.session.execute(db.select(Tenant).where(Tenant.slug == slug)).scalar_one_or_none():
        raise ConflictError("Tenant", "slug", slug)

    tenant = Tenant(name=name, slug=slug, is_active=True, settings=data.get("settings") or {})
    db.session.add(tenant)
    db.session.commit()
    logger.info("Tenant created: %s (#%d)", name[:200], tenant.id)

    admin = None
    if data.get("admin"):
        payload = {**data["admin"], "role": UserRole.ADMIN.value}
        admin, raw_token = auth_service.register_user(
            tenant.id, payload, actor_role=UserRole.SUPER_ADMIN.value,
        )
        if raw_token:
            log_and_continue("Tenant admin welcome email",
                             auth_service.send_welcome_email, admin, raw_token,
                             rollback=True)
    return tenant, admin
