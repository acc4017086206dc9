"""Uploaded document model."""

from datetime import datetime, timezone

from app.core.constants import DocumentStatus
from app.models import db


class Document(db.Model):
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False,
    )
    checklist_item_id = db.Column(
        db.Integer,
        db.ForeignKey("document_checklist_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    validated_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    name = db.Column(db.String(300), nullable=False)
    file_name = db.Column(db.String(300), nullable=False)
    storage_path = db.Column(db.String(600), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    mime_type = db.Column(db.String(120), nullable=False, default="application/octet-stream")
    document_type = db.Column(db.String(40), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=DocumentStatus.UPLOADED.value)
    validation_notes = db.Column(db.Text)
    validated_at = db.Column(db.DateTime(timezone=True))
    metadata_ = db.Column("metadata", db.JSON, default=dict)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="documents")
    checklist_item = db.relationship("DocumentChecklistItem", back_populates="documents")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "organization_id": self.organization_id,
            "checklist_item_id": self.checklist_item_id,
            "uploaded_by_id": self.uploaded_by_id,
            "validated_by_id": self.validated_by_id,
            "name": self.name,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "document_type": self.document_type,
            "description": self.description,
            "status": self.status,
            "validation_notes": self.validation_notes,
            "validated_at": self.validated_at.isoformat() if self.validated_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Document {self.id}: {self.file_name}>"
