"""
Organization service: CRUD for client companies.

Rules:
  - Blank strings are stored as NULL.
  - cnpj is unique per tenant when present.
  - Editing mission / vision / values re-syncs the checklist of every project
    of the organization (MISSION_VISION_VALUES may become satisfied).
  - An organization that still has projects cannot be deleted.
"""

import logging

from sqlalchemy import or_

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.organization import Organization
from app.models.project import Project
from app.services.checklist_service import sync_checklist_status
from app.services.helpers.scoped_queries import get_scoped
from app.utils.helpers import commit_or_conflict

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "name", "trade_name", "cnpj", "industry", "size", "website",
    "address", "city", "state", "zip_code", "country",
    "contact_name", "contact_email", "contact_phone",
    "mission", "vision", "values",
)
IDENTITY_FIELDS = ("mission", "vision", "values")
ORGANIZATION_SIZES = {"MICRO", "SMALL", "MEDIUM", "LARGE", "ENTERPRISE"}


def _clean(data: dict) -> dict:
    cleaned = {}
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if isinstance(value, str):
            value = value.strip() or None
        cleaned[field] = value
    return cleaned


def _validate(fields: dict, *, creating: bool) -> None:
    errors = {}
    if creating and not fields.get("name"):
        errors["name"] = "required"
    if "name" in fields and not creating and not fields["name"]:
        errors["name"] = "required"
    if fields.get("size") and fields["size"] not in ORGANIZATION_SIZES:
        errors["size"] = f"must be one of {sorted(ORGANIZATION_SIZES)}"
    if fields.get("contact_email") and "@" not in fields["contact_email"]:
        errors["contact_email"] = "invalid"
    if errors:
        raise ValidationError("Invalid organization data", details=errors)


def _check_cnpj(tenant_id: int, cnpj: str | None, exclude_id: int | None = None) -> None:
    if not cnpj:
        return
    q = Organization.query.filter_by(tenant_id=tenant_id, cnpj=cnpj)
    if exclude_id is not None:
        q = q.filter(Organization.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Organization", "cnpj", cnpj)


def list_organizations(tenant_id: int, *, search: str | None = None,
                       page: int = 1, per_page: int = 20) -> dict:
    q = Organization.query.filter_by(tenant_id=tenant_id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Organization.name.ilike(like), Organization.trade_name.ilike(like),
                         Organization.cnpj.ilike(like)))
    total = q.count()
    items = q.order_by(Organization.name).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [o.to_dict() for o in items],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


def get_organization(tenant_id: int, organization_id: int) -> Organization:
    return get_scoped(Organization, organization_id, tenant_id=tenant_id)


def create_organization(tenant_id: int, data: dict) -> Organization:
    fields = _clean(data)
    _validate(fields, creating=True)
    _check_cnpj(tenant_id, fields.get("cnpj"))

    org = Organization(tenant_id=tenant_id, **fields)
    db.session.add(org)
    commit_or_conflict("Organization", "cnpj", fields.get("cnpj"))
    logger.info("Organization %s created in tenant %s", org.id, tenant_id)
    return org


def update_organization(tenant_id: int, organization_id: int, data: dict) -> Organization:
    org = get_organization(tenant_id, organization_id)
    fields = _clean(data)
    _validate(fields, creating=False)
    if "cnpj" in fields:
        _check_cnpj(tenant_id, fields["cnpj"], exclude_id=org.id)

    identity_changed = any(
        f in fields and fields[f] != getattr(org, f) for f in IDENTITY_FIELDS
    )
    for field, value in fields.items():
        setattr(org, field, value)
    commit_or_conflict("Organization", "cnpj", fields.get("cnpj"))
    logger.info("Organization %s updated: %s", org.id, sorted(fields))

    if identity_changed:
        project_ids = [pid for (pid,) in db.session.query(Project.id).filter_by(organization_id=org.id)]
        for project_id in project_ids:
            sync_checklist_status(project_id, organization_id=org.id)
    return org


def delete_organization(tenant_id: int, organization_id: int) -> None:
    org = get_organization(tenant_id, organization_id)
    if org.projects.count():
        raise ValidationError(
            "Organization still has projects",
            details={"projects": org.projects.count()},
        )
    db.session.delete(org)
    db.session.commit()
    logger.info("Organization %s deleted from tenant %s", organization_id, tenant_id)
