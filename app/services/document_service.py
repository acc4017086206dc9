"""
Document service: upload, review and removal of client documents.

Rules:
  - An upload is attached to a checklist item: the one given explicitly
    (must belong to the project) or the item matching ``document_type``.
  - The checklist status change after an upload comes from the engine's
    document signal, through a best-effort re-sync after commit.
  - Review maps APPROVED -> VALIDATED and REJECTED -> REJECTED on the
    document and mirrors the decision onto its checklist item.
  - Deleting a document never moves its checklist item backwards.
  - Storage and notification failures after commit are logged only.
"""

import logging

from app.core.constants import ChecklistStatus, DocumentStatus, DocumentType, enum_values
from app.core.exceptions import ValidationError
from app.models import db
from app.models.checklist import DocumentChecklistItem
from app.models.document import Document
from app.models.project import Project
from app.services.checklist_service import apply_review, ensure_checklist, sync_checklist_status
from app.services.helpers.scoped_queries import get_scoped
from app.services.notification import NotificationService
from app.services.storage_service import get_storage
from app.utils.helpers import log_and_continue, utcnow

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    "image/png",
    "image/jpeg",
}
REVIEW_DECISIONS = {"APPROVED": DocumentStatus.VALIDATED, "REJECTED": DocumentStatus.REJECTED}


def list_for_project(project: Project) -> list[dict]:
    docs = project.documents.order_by(Document.created_at.desc(), Document.id.desc()).all()
    return [d.to_dict() for d in docs]


def get_document(tenant_id: int, document_id: int, *, organization_id: int | None = None) -> Document:
    return get_scoped(Document, document_id, tenant_id=tenant_id, organization_id=organization_id)


def _resolve_checklist_item(project: Project, document_type: str,
                            checklist_item_id: int | None) -> DocumentChecklistItem | None:
    if checklist_item_id:
        return get_scoped(DocumentChecklistItem, checklist_item_id, project_id=project.id)
    for item in ensure_checklist(project.id):
        if item.document_type == document_type:
            return item
    return None


def upload_document(project: Project, *, content: bytes, file_name: str, mime_type: str | None,
                    document_type: str, name: str | None = None, description: str | None = None,
                    checklist_item_id: int | None = None, uploaded_by: int | None = None) -> Document:
    """Store the file, create the Document row, then re-sync the checklist."""
    errors = {}
    if not content:
        errors["file"] = "empty file"
    if not file_name:
        errors["file_name"] = "required"
    if document_type not in enum_values(DocumentType):
        errors["document_type"] = f"must be one of {enum_values(DocumentType)}"
    mime_type = mime_type or "application/octet-stream"
    if mime_type not in ALLOWED_MIME_TYPES:
        errors["mime_type"] = f"unsupported type {mime_type}"
    if errors:
        raise ValidationError("Invalid upload", details=errors)

    item = _resolve_checklist_item(project, document_type, checklist_item_id)
    if item is not None and item.document_type != document_type and checklist_item_id:
        raise ValidationError(
            "document_type does not match the checklist item",
            details={"document_type": f"item expects {item.document_type}"},
        )

    storage = get_storage()
    storage_path = storage.upload(
        content, file_name, mime_type,
        folder=f"tenants/{project.tenant_id}/projects/{project.id}",
    )

    document = Document(
        tenant_id=project.tenant_id,
        project_id=project.id,
        organization_id=project.organization_id,
        checklist_item_id=item.id if item else None,
        uploaded_by_id=uploaded_by,
        name=(name or file_name).strip(),
        file_name=file_name,
        storage_path=storage_path,
        file_size=len(content),
        mime_type=mime_type,
        document_type=document_type,
        description=description,
        status=DocumentStatus.UPLOADED.value,
    )
    db.session.add(document)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        log_and_continue(f"Remove orphaned upload {storage_path}", storage.delete, storage_path)
        raise
    logger.info("Document %s uploaded to project %s (type=%s item=%s)",
                document.id, project.id, document_type, document.checklist_item_id)

    log_and_continue("Document-uploaded notification",
                     NotificationService.notify_document_uploaded, document, project,
                     rollback=True)
    sync_checklist_status(project.id)
    return document


def review_document(document: Document, decision: str, *, user_id: int | None,
                    notes: str | None = None) -> Document:
    """Approve or reject a document; the checklist item follows."""
    status = REVIEW_DECISIONS.get((decision or "").upper())
    if status is None:
        raise ValidationError("status must be APPROVED or REJECTED", details={"status": "invalid"})

    item = document.checklist_item
    if item is not None and item.status == ChecklistStatus.PENDING.value:
        # Upload re-sync did not land yet; the document signal delivers the item first
        sync_checklist_status(document.project_id)
        db.session.refresh(item)

    document.status = status.value
    document.validation_notes = notes
    document.validated_by_id = user_id
    document.validated_at = utcnow()
    if document.checklist_item is not None:
        apply_review(document.checklist_item, status.value, user_id=user_id, notes=notes,
                     source="document_review")
    db.session.commit()
    logger.info("Document %s reviewed: %s by user %s", document.id, status.value, user_id)

    sync_checklist_status(document.project_id)
    return document


def delete_document(document: Document) -> None:
    storage_path = document.storage_path
    project_id = document.project_id
    db.session.delete(document)
    db.session.commit()
    logger.info("Document %s deleted from project %s", document.id, project_id)
    log_and_continue(f"Delete stored file {storage_path}", get_storage().delete, storage_path)


def get_download_url(document: Document, expires_in: int = 3600) -> str:
    return get_storage().signed_url(document.storage_path, expires_in=expires_in)
