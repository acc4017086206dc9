"""
Document checklist models.

Models:
    - DocumentChecklistItem: one expected document per (project, document type)
    - DocumentChecklistHistory: status change log for an item
"""

from datetime import datetime, timezone

from app.core.constants import ChecklistStatus
from app.models import db


class DocumentChecklistItem(db.Model):
    __tablename__ = "document_checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type = db.Column(db.String(40), nullable=False)
    instructions = db.Column(db.Text, default="")
    order = db.Column(db.Integer, nullable=False, default=0)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default=ChecklistStatus.PENDING.value)
    content = db.Column(db.Text, nullable=True, comment="Free-text answer instead of a file")
    validation_notes = db.Column(db.Text, nullable=True)

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

    project = db.relationship("Project", back_populates="checklist_items")
    documents = db.relationship("Document", back_populates="checklist_item", lazy="select")
    history = db.relationship(
        "DocumentChecklistHistory", back_populates="item", lazy="select",
        order_by="DocumentChecklistHistory.id",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "document_type", name="uq_checklist_project_type"),
    )

    def to_dict(self, include_history: bool = True) -> dict:
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "document_type": self.document_type,
            "instructions": self.instructions,
            "order": self.order,
            "is_required": self.is_required,
            "status": self.status,
            "content": self.content,
            "validation_notes": self.validation_notes,
            "documents": [d.to_dict() for d in self.documents],
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            result["history"] = [h.to_dict() for h in self.history]
        return result

    def __repr__(self) -> str:
        return f"<DocumentChecklistItem {self.id}: {self.document_type}={self.status}>"


class DocumentChecklistHistory(db.Model):
    __tablename__ = "document_checklist_history"

    id = db.Column(db.Integer, primary_key=True)
    checklist_item_id = db.Column(
        db.Integer,
        db.ForeignKey("document_checklist_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        comment="NULL = system reconciliation",
    )
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=False)
    source = db.Column(db.String(60), nullable=False, default="system")
    note = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    item = db.relationship("DocumentChecklistItem", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "checklist_item_id": self.checklist_item_id,
            "user_id": self.user_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "source": self.source,
            "note": self.note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
