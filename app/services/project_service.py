"""
Project service: project lifecycle, onboarding settings and reminders.

Rules:
  - Every lookup is tenant scoped; CLIENT callers are further confined to
    their own organization (``organization_id`` argument).
  - ``progress`` is derived and is never taken from the request body.
  - ``settings.onboarding`` is merged key by key into the stored map; other
    ``settings`` keys are replaced shallowly. Unknown onboarding step ids are
    rejected.
  - Create and update both re-sync the checklist after commit; a failing
    re-sync is logged and does not fail the request.
  - Stage may be set to any value by hand. The only automatic edge lives in
    the checklist engine.
  - process_onboarding_reminders() walks every ONBOARDING project below 100%
    that has a client user; one failing project does not stop the batch.
"""

import logging
import secrets
import time

from flask import current_app
from sqlalchemy import or_

from app.core.checklist_template import ONBOARDING_STEP_IDS
from app.core.constants import (
    ProjectStage,
    ProjectStatus,
    UserRole,
    UserStatus,
    enum_values,
)
from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.checklist import DocumentChecklistItem
from app.models.document import Document
from app.models.interview import Interview
from app.models.organization import Organization
from app.models.project import Project, ProjectActivity
from app.services import auth_service
from app.services.checklist_service import ensure_checklist, list_items, sync_checklist_status
from app.services.email_service import EmailService
from app.services.helpers.scoped_queries import get_scoped
from app.services.storage_service import get_storage
from app.utils.helpers import log_and_continue, parse_date

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name", "description", "status", "stage", "consultant_id", "client_user_id",
    "start_date", "target_end_date", "settings",
)
STAFF_ROLES = {UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value, UserRole.CONSULTANT.value}
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# ═════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or "0"


def generate_project_code() -> str:
    """``PRJ-<base36 epoch ms>-<6 hex>``, upper-cased."""
    return f"PRJ-{_base36(int(time.time() * 1000))}-{secrets.token_hex(3)}".upper()


def record_activity(project_id: int, action: str, description: str = "", *,
                    user_id: int | None = None, metadata: dict | None = None) -> ProjectActivity:
    """Add a project activity row to the session. Does not commit."""
    activity = ProjectActivity(
        project_id=project_id,
        user_id=user_id,
        action=action,
        description=description,
        metadata_=metadata or {},
    )
    db.session.add(activity)
    return activity


def validate_onboarding(onboarding) -> dict:
    if not isinstance(onboarding, dict):
        raise ValidationError("settings.onboarding must be an object")
    unknown = sorted(k for k in onboarding if k not in ONBOARDING_STEP_IDS)
    if unknown:
        raise ValidationError(
            "Unknown onboarding step(s)",
            details={"onboarding": {k: "unknown step" for k in unknown}},
        )
    bad = sorted(k for k, v in onboarding.items() if v is not None and not isinstance(v, str))
    if bad:
        raise ValidationError(
            "Onboarding step values must be strings",
            details={"onboarding": {k: "must be a string" for k in bad}},
        )
    return onboarding


def merge_settings(current: dict | None, incoming: dict) -> dict:
    """Shallow-merge ``incoming`` into ``current``, merging ``onboarding`` key by key."""
    if not isinstance(incoming, dict):
        raise ValidationError("settings must be an object")
    current = dict(current or {})
    merged = {**current, **incoming}
    if "onboarding" in incoming:
        onboarding = validate_onboarding(incoming["onboarding"] or {})
        merged["onboarding"] = {**(current.get("onboarding") or {}), **onboarding}
    return merged


def _check_enum(field: str, value, enum_cls, errors: dict):
    if value is not None and value not in enum_values(enum_cls):
        errors[field] = f"must be one of {enum_values(enum_cls)}"


def _check_user(tenant_id: int, user_id, field: str, roles: set, errors: dict):
    if user_id is None:
        return
    user = User.query.filter_by(id=user_id, tenant_id=tenant_id).first()
    if user is None or user.role not in roles:
        errors[field] = "unknown user or wrong role"


# ═════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════


def list_projects(tenant_id: int, *, organization_id: int | None = None, status: str | None = None,
                  stage: str | None = None, consultant_id: int | None = None,
                  search: str | None = None, page: int = 1, per_page: int = 20) -> dict:
    q = Project.query.filter(Project.tenant_id == tenant_id)
    if organization_id is not None:
        q = q.filter(Project.organization_id == organization_id)
    if status:
        q = q.filter(Project.status == status)
    if stage:
        q = q.filter(Project.stage == stage)
    if consultant_id:
        q = q.filter(Project.consultant_id == consultant_id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Project.name.ilike(like), Project.code.ilike(like)))
    total = q.count()
    items = (
        q.order_by(Project.created_at.desc(), Project.id.desc())
        .offset((page - 1) * per_page).limit(per_page).all()
    )
    return {
        "items": [p.to_dict() for p in items],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


def get_project(tenant_id: int, project_id: int, *, organization_id: int | None = None) -> Project:
    return get_scoped(Project, project_id, tenant_id=tenant_id, organization_id=organization_id)


def get_checklist_item(tenant_id: int, item_id: int, *,
                       organization_id: int | None = None) -> DocumentChecklistItem:
    q = DocumentChecklistItem.query.join(Project).filter(
        DocumentChecklistItem.id == item_id,
        Project.tenant_id == tenant_id,
    )
    if organization_id is not None:
        q = q.filter(Project.organization_id == organization_id)
    item = q.first()
    if item is None:
        raise NotFoundError("DocumentChecklistItem", item_id, tenant_id)
    return item


def get_checklist(project: Project) -> list[dict]:
    """Seed if needed, re-sync, and return the checklist as dicts."""
    ensure_checklist(project.id)
    sync_checklist_status(project.id)
    return [i.to_dict() for i in list_items(project.id)]


def get_progress(project: Project) -> dict:
    checklist = get_checklist(project)
    db.session.refresh(project)
    return {"progress": project.progress, "stage": project.stage, "checklist": checklist}


def list_activities(project: Project, limit: int = 50) -> list[dict]:
    rows = (
        project.activities.order_by(ProjectActivity.created_at.desc(), ProjectActivity.id.desc())
        .limit(limit).all()
    )
    return [a.to_dict() for a in rows]


# ═════════════════════════════════════════════════════════════════════════
# Commands
# ═════════════════════════════════════════════════════════════════════════


def create_project(tenant_id: int, data: dict, *, created_by: int | None = None) -> Project:
    """Create a project, seed its checklist and optionally invite the client contact.

    Body keys: name, organization_id, description?, status?, stage?,
    consultant_id?, client_user_id?, start_date?, target_end_date?,
    settings?, client? ({email, first_name, last_name?, phone?})
    """
    errors = {}
    name = (data.get("name") or "").strip()
    if not name:
        errors["name"] = "required"
    elif len(name) > 200:
        errors["name"] = "max 200 characters"
    if not data.get("organization_id"):
        errors["organization_id"] = "required"
    _check_enum("status", data.get("status"), ProjectStatus, errors)
    _check_enum("stage", data.get("stage"), ProjectStage, errors)
    _check_user(tenant_id, data.get("consultant_id"), "consultant_id", STAFF_ROLES, errors)
    _check_user(tenant_id, data.get("client_user_id"), "client_user_id", {UserRole.CLIENT.value}, errors)
    if errors:
        raise ValidationError("Invalid project data", details=errors)

    org = get_scoped(Organization, data["organization_id"], tenant_id=tenant_id)
    settings = merge_settings({}, data.get("settings") or {})

    client_user_id = data.get("client_user_id")
    client_token = None
    if not client_user_id and data.get("client"):
        client, client_token = auth_service.invite_client(tenant_id, org.id, data["client"])
        client_user_id = client.id

    project = Project(
        tenant_id=tenant_id,
        organization_id=org.id,
        consultant_id=data.get("consultant_id") or _default_consultant(tenant_id, created_by),
        client_user_id=client_user_id,
        code=generate_project_code(),
        name=name,
        description=data.get("description"),
        status=data.get("status") or ProjectStatus.DRAFT.value,
        stage=data.get("stage") or ProjectStage.ONBOARDING.value,
        progress=0,
        settings=settings,
        start_date=parse_date(data.get("start_date")),
        target_end_date=parse_date(data.get("target_end_date")),
    )
    db.session.add(project)
    db.session.flush()
    record_activity(project.id, "PROJECT_CREATED", f"Project {project.code} created", user_id=created_by)
    db.session.commit()
    logger.info("Project %s created in tenant %s (org=%s)", project.code, tenant_id, org.id)

    ensure_checklist(project.id)
    sync_checklist_status(project.id)

    if client_token:
        log_and_continue(
            "Welcome email",
            auth_service.send_welcome_email, project.client_user, client_token, project=project,
            rollback=True,
        )
    return project


def _default_consultant(tenant_id: int, user_id: int | None) -> int | None:
    """Default consultant: the creating user, when they are tenant staff."""
    if user_id is None:
        return None
    user = User.query.filter_by(id=user_id, tenant_id=tenant_id).first()
    if user is not None and user.role in STAFF_ROLES:
        return user.id
    return None


def update_project(tenant_id: int, project_id: int, data: dict, *, user_id: int | None = None,
                   organization_id: int | None = None) -> Project:
    """Apply a partial update, then re-sync the checklist with the merged onboarding map."""
    project = get_project(tenant_id, project_id, organization_id=organization_id)

    errors = {}
    if "name" in data and not (data.get("name") or "").strip():
        errors["name"] = "required"
    _check_enum("status", data.get("status"), ProjectStatus, errors)
    _check_enum("stage", data.get("stage"), ProjectStage, errors)
    if "consultant_id" in data:
        _check_user(tenant_id, data.get("consultant_id"), "consultant_id", STAFF_ROLES, errors)
    if "client_user_id" in data:
        _check_user(tenant_id, data.get("client_user_id"), "client_user_id", {UserRole.CLIENT.value}, errors)
    if errors:
        raise ValidationError("Invalid project data", details=errors)

    changed = []
    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "settings":
            value = merge_settings(project.settings, value or {})
        elif field in ("start_date", "target_end_date"):
            value = parse_date(value)
        elif field == "name":
            value = value.strip()
        if getattr(project, field) != value:
            setattr(project, field, value)
            changed.append(field)

    if changed:
        record_activity(project.id, "PROJECT_UPDATED", f"Updated: {', '.join(changed)}",
                        user_id=user_id, metadata={"fields": changed})
        db.session.commit()
        logger.info("Project %s updated: %s", project.id, changed)

    sync_checklist_status(project.id, project.onboarding, project.organization_id)
    db.session.refresh(project)
    return project


def delete_project(tenant_id: int, project_id: int) -> None:
    """Delete a project with its checklist, documents, surveys, interviews, reports and activities."""
    project = get_project(tenant_id, project_id)
    paths = [p for (p,) in db.session.query(Document.storage_path).filter_by(project_id=project.id)]
    paths += [
        p for (p,) in db.session.query(Interview.transcription_path).filter_by(project_id=project.id) if p
    ]
    db.session.delete(project)
    db.session.commit()
    logger.info("Project %s deleted (%d stored files)", project_id, len(paths))

    storage = get_storage()
    for path in paths:
        log_and_continue(f"Delete stored file {path}", storage.delete, path)


# ═════════════════════════════════════════════════════════════════════════
# Onboarding reminders
# ═════════════════════════════════════════════════════════════════════════


def _onboarding_link(project: Project, client: User) -> str:
    """Activation link for a PENDING client, the onboarding page otherwise."""
    if client.status == UserStatus.PENDING.value:
        raw = auth_service.issue_activation_token(client)
        return auth_service.activation_link(raw)
    return f"{current_app.config['FRONTEND_URL']}/projects/{project.id}/onboarding"


def _send_onboarding_reminder(project: Project, *, user_id: int | None = None):
    client = project.client_user
    if client is None:
        raise ValidationError("Project has no client user", details={"client_user_id": "required"})

    link = _onboarding_link(project, client)
    log = EmailService.send_from_template(
        to_email=client.email,
        to_name=client.full_name,
        template_name="onboarding_reminder",
        context={
            "name": client.first_name,
            "project_name": project.name,
            "progress": project.progress,
            "link": link,
        },
        category="onboarding",
        project_id=project.id,
    )
    record_activity(
        project.id, "ONBOARDING_REMINDER_SENT",
        f"Onboarding reminder sent to {client.email}",
        user_id=user_id,
        metadata={"email_status": log.status, "progress": project.progress, "recipient": client.email},
    )
    db.session.commit()
    return log


def resend_onboarding_reminder(project: Project, *, user_id: int | None = None) -> dict:
    log = _send_onboarding_reminder(project, user_id=user_id)
    return {"project_id": project.id, "recipient": log.recipient_email, "email_status": log.status}


def process_onboarding_reminders() -> dict:
    """Send the onboarding reminder to every project still stuck in ONBOARDING.

    Returns:
        {"processed": n, "sent": n, "failed": n, "errors": [{"project_id", "error"}]}
    """
    project_ids = [
        pid for (pid,) in db.session.query(Project.id).filter(
            Project.stage == ProjectStage.ONBOARDING.value,
            Project.progress < 100,
            Project.client_user_id.is_not(None),
        ).order_by(Project.id)
    ]

    results = {"processed": 0, "sent": 0, "failed": 0, "errors": []}
    for project_id in project_ids:
        results["processed"] += 1
        try:
            project = db.session.get(Project, project_id)
            log = _send_onboarding_reminder(project)
        except Exception as exc:
            db.session.rollback()
            results["failed"] += 1
            results["errors"].append({"project_id": project_id, "error": str(exc)})
            logger.error("Onboarding reminder failed for project %s: %s", project_id, exc)
            continue
        if log.status == "sent":
            results["sent"] += 1
        else:
            results["failed"] += 1

    logger.info(
        "Onboarding reminders: processed=%d sent=%d failed=%d",
        results["processed"], results["sent"], results["failed"],
    )
    return results
