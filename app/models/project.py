"""Project domain model and its activity log."""

from datetime import datetime, timezone

from app.core.constants import ProjectStage, ProjectStatus
from app.models import db


class Project(db.Model):
    """One diagnostic engagement for an Organization.

    ``progress`` is derived from the document checklist and must only be
    written by the checklist reconciliation.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    consultant_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    client_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    code = db.Column(db.String(50), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default=ProjectStatus.DRAFT.value)
    stage = db.Column(db.String(30), nullable=False, default=ProjectStage.ONBOARDING.value, index=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    settings = db.Column(db.JSON, nullable=False, default=dict, comment='{"onboarding": {step_id: value}}')
    start_date = db.Column(db.Date, nullable=True)
    target_end_date = db.Column(db.Date, nullable=True)

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

    organization = db.relationship("Organization", back_populates="projects")
    consultant = db.relationship("User", foreign_keys=[consultant_id])
    client_user = db.relationship("User", foreign_keys=[client_user_id])

    checklist_items = db.relationship(
        "DocumentChecklistItem", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    documents = db.relationship(
        "Document", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    reports = db.relationship(
        "Report", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    activities = db.relationship(
        "ProjectActivity", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    surveys = db.relationship(
        "Survey", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    interviews = db.relationship(
        "Interview", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.Index("ix_projects_tenant_org", "tenant_id", "organization_id"),
    )

    @property
    def onboarding(self) -> dict:
        return dict((self.settings or {}).get("onboarding") or {})

    def to_dict(self) -> dict:
        """Serialize core project fields for API responses."""
        org = self.organization
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "organization_id": self.organization_id,
            "organization_name": org.name if org else None,
            "consultant_id": self.consultant_id,
            "client_user_id": self.client_user_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "stage": self.stage,
            "progress": self.progress,
            "settings": self.settings or {},
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "target_end_date": self.target_end_date.isoformat() if self.target_end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.code}>"


class ProjectActivity(db.Model):
    """Audit trail entry for project-level events (reminders, stage moves, edits)."""

    __tablename__ = "project_activities"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = db.Column(db.String(60), nullable=False)
    description = db.Column(db.Text, default="")
    metadata_ = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="activities")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "action": self.action,
            "description": self.description,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
