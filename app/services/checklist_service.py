"""
Checklist service: seeding, reconciliation and manual item updates.

Rules:
  - ensure_checklist seeds the 8-item default checklist once per project.
    The (project_id, document_type) unique constraint makes concurrent
    seeding safe: the losing request rolls back and re-reads.
  - reconcile() runs the progress engine and commits. It raises on failure.
  - sync_checklist_status() is the variant for side-effect call sites
    (after an upload, a project edit, a read): failures are logged, the
    session is rolled back and None is returned.
  - Reviewers may only move an item that was delivered (UPLOADED) or already
    reviewed (VALIDATED <-> REJECTED). Nothing here moves an item back to
    PENDING or UPLOADED.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.checklist_template import DEFAULT_CHECKLIST
from app.core.constants import ChecklistStatus
from app.core.exceptions import ValidationError
from app.models import db
from app.models.checklist import DocumentChecklistHistory, DocumentChecklistItem
from app.models.project import Project
from app.services.checklist_engine import ProgressEngine, ReconcileResult
from app.services.checklist_store import SqlChecklistStore, SqlOrganizationReader
from app.services.email_service import EmailService
from app.services.notification import NotificationService
from app.utils.helpers import log_and_continue

logger = logging.getLogger(__name__)

REVIEW_STATUSES = (ChecklistStatus.VALIDATED, ChecklistStatus.REJECTED)


def _engine() -> ProgressEngine:
    return ProgressEngine(SqlChecklistStore(), SqlOrganizationReader())


def list_items(project_id: int) -> list[DocumentChecklistItem]:
    stmt = (
        select(DocumentChecklistItem)
        .where(DocumentChecklistItem.project_id == project_id)
        .order_by(DocumentChecklistItem.order, DocumentChecklistItem.id)
    )
    return list(db.session.execute(stmt).scalars())


# ═════════════════════════════════════════════════════════════════════════
# Seeding
# ═════════════════════════════════════════════════════════════════════════


def ensure_checklist(project_id: int) -> list[DocumentChecklistItem]:
    """Return the project's checklist, creating the default items if it has none.

    Existing items are returned untouched. Commits the current session.
    A persistence failure is logged and yields an empty list.
    """
    try:
        existing = list_items(project_id)
        if existing:
            return existing
        for entry in DEFAULT_CHECKLIST:
            db.session.add(DocumentChecklistItem(
                project_id=project_id,
                document_type=entry.document_type.value,
                instructions=entry.instructions,
                order=entry.order,
                is_required=entry.is_required,
                status=ChecklistStatus.PENDING.value,
            ))
        db.session.commit()
        logger.info("Seeded default checklist: project=%s items=%d", project_id, len(DEFAULT_CHECKLIST))
    except IntegrityError:
        db.session.rollback()
        logger.info("Checklist for project %s was seeded concurrently; re-reading", project_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Checklist seeding failed for project %s", project_id)
        return []
    return list_items(project_id)


# ═════════════════════════════════════════════════════════════════════════
# Reconciliation
# ═════════════════════════════════════════════════════════════════════════


def reconcile(project_id: int, onboarding_settings=None, organization_id=None) -> ReconcileResult:
    """Fold all completion signals into the checklist, then progress and stage.

    Commits when anything changed. Stage-advance side effects (activity,
    notifications, emails) run afterwards and never fail the call.
    """
    result = _engine().reconcile(project_id, onboarding_settings, organization_id)
    if result.changed:
        db.session.commit()
    if result.stage_advanced:
        _on_stage_advanced(project_id, result)
    return result


def sync_checklist_status(project_id: int, onboarding_settings=None, organization_id=None):
    """Best-effort reconcile for side-effect call sites. Returns None on failure."""
    return log_and_continue(
        f"Checklist reconcile for project {project_id}",
        reconcile, project_id, onboarding_settings, organization_id,
        rollback=True,
    )


def _on_stage_advanced(project_id: int, result: ReconcileResult) -> None:
    from app.services.project_service import record_activity

    project = db.session.get(Project, project_id)
    log_and_continue(
        "Stage-advance activity",
        _commit_activity, record_activity, project,
        f"Stage advanced from {result.stage_before.value} to {result.stage_after.value}",
        {"from": result.stage_before.value, "to": result.stage_after.value},
        rollback=True,
    )
    log_and_continue("Stage-advance notification", NotificationService.notify_stage_advanced,
                     project, rollback=True)
    log_and_continue("Stage-advance email", _email_stage_advanced, project, rollback=True)


def _commit_activity(record_activity, project, description, metadata):
    record_activity(project.id, "STAGE_ADVANCED", description, metadata=metadata)
    db.session.commit()


def _email_stage_advanced(project: Project) -> None:
    from flask import current_app

    link = f"{current_app.config['FRONTEND_URL']}/projects/{project.id}"
    for user in (project.consultant, project.client_user):
        if user is None:
            continue
        EmailService.send_from_template(
            to_email=user.email,
            to_name=user.full_name,
            template_name="stage_advanced",
            context={"name": user.first_name, "project_name": project.name,
                     "stage": project.stage, "link": link},
            category="project",
            project_id=project.id,
        )
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════
# Manual item updates
# ═════════════════════════════════════════════════════════════════════════


def _add_history(item, to_status, *, user_id, source, note=None):
    db.session.add(DocumentChecklistHistory(
        checklist_item_id=item.id,
        user_id=user_id,
        from_status=item.status,
        to_status=to_status.value,
        source=source,
        note=note,
    ))


def update_item_text(item: DocumentChecklistItem, content: str, *, user_id: int | None):
    """Store a free-text answer for an item; a PENDING item becomes UPLOADED."""
    content = (content or "").strip()
    if not content:
        raise ValidationError("content is required", details={"content": "required"})

    item.content = content
    if item.status == ChecklistStatus.PENDING.value:
        _add_history(item, ChecklistStatus.UPLOADED, user_id=user_id, source="manual_text")
        item.status = ChecklistStatus.UPLOADED.value
    db.session.commit()
    logger.info("Checklist item %s text updated by user %s", item.id, user_id)

    sync_checklist_status(item.project_id)
    return item


def apply_review(item: DocumentChecklistItem, status, *, user_id: int | None,
                 notes: str | None = None, source: str = "validation") -> None:
    """Move a delivered item to VALIDATED or REJECTED. Does not commit."""
    try:
        target = ChecklistStatus(status)
    except ValueError:
        target = None
    if target not in REVIEW_STATUSES:
        raise ValidationError(
            "status must be VALIDATED or REJECTED",
            details={"status": f"got {status!r}"},
        )
    if item.status == ChecklistStatus.PENDING.value:
        raise ValidationError(
            "Checklist item has not been delivered yet",
            details={"status": item.status},
        )
    if notes is not None:
        item.validation_notes = notes
    if item.status != target.value:
        _add_history(item, target, user_id=user_id, source=source, note=notes)
        item.status = target.value


def set_item_status(item: DocumentChecklistItem, status, *, user_id: int | None,
                    notes: str | None = None):
    """Reviewer decision on a checklist item, followed by a progress re-sync."""
    apply_review(item, status, user_id=user_id, notes=notes)
    db.session.commit()
    logger.info("Checklist item %s reviewed: status=%s by user %s", item.id, item.status, user_id)

    sync_checklist_status(item.project_id)
    return item
