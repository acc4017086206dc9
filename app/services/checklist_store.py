"""SQLAlchemy-backed ChecklistStore and OrganizationReader.

Writes go to ``db.session`` without committing; the checklist service owns
the transaction boundary.
"""

from sqlalchemy import func, select

from app.core.constants import ChecklistStatus, ProjectStage
from app.models import db
from app.models.checklist import DocumentChecklistHistory, DocumentChecklistItem
from app.models.document import Document
from app.models.organization import Organization
from app.models.project import Project
from app.services.checklist_engine import (
    ChecklistItemState,
    ChecklistStore,
    OrganizationProfile,
    OrganizationReader,
    ProjectState,
    StatusTransition,
)


class SqlChecklistStore(ChecklistStore):

    def get_project_state(self, project_id: int) -> ProjectState | None:
        project = db.session.get(Project, project_id)
        if project is None:
            return None
        return ProjectState(
            project_id=project.id,
            stage=ProjectStage(project.stage),
            progress=project.progress or 0,
            organization_id=project.organization_id,
            onboarding=project.onboarding,
        )

    def list_items(self, project_id: int) -> list[ChecklistItemState]:
        doc_counts = (
            select(Document.checklist_item_id, func.count(Document.id).label("n"))
            .where(Document.project_id == project_id, Document.checklist_item_id.is_not(None))
            .group_by(Document.checklist_item_id)
            .subquery()
        )
        stmt = (
            select(DocumentChecklistItem, func.coalesce(doc_counts.c.n, 0))
            .outerjoin(doc_counts, doc_counts.c.checklist_item_id == DocumentChecklistItem.id)
            .where(DocumentChecklistItem.project_id == project_id)
            .order_by(DocumentChecklistItem.order, DocumentChecklistItem.id)
        )
        return [
            ChecklistItemState(
                id=item.id,
                document_type=item.document_type,
                status=ChecklistStatus(item.status),
                document_count=count,
            )
            for item, count in db.session.execute(stmt).all()
        ]

    def apply_transitions(self, project_id: int, transitions: list[StatusTransition]) -> list[StatusTransition]:
        applied = []
        for t in transitions:
            item = db.session.get(DocumentChecklistItem, t.item_id)
            if item is None or item.project_id != project_id:
                continue
            # Re-check against the row: a concurrent validation may have landed
            if item.status != t.from_status.value:
                continue
            item.status = t.to_status.value
            db.session.add(DocumentChecklistHistory(
                checklist_item_id=item.id,
                user_id=None,
                from_status=t.from_status.value,
                to_status=t.to_status.value,
                source=t.source,
            ))
            applied.append(t)
        db.session.flush()
        return applied

    def save_progress(self, project_id: int, progress: int, stage: ProjectStage) -> None:
        project = db.session.get(Project, project_id)
        project.progress = progress
        project.stage = stage.value
        db.session.flush()


class SqlOrganizationReader(OrganizationReader):

    def get_profile(self, organization_id: int) -> OrganizationProfile | None:
        org = db.session.get(Organization, organization_id)
        if org is None:
            return None
        return OrganizationProfile(mission=org.mission, vision=org.vision, values=org.values)
