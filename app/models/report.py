"""
Diagnostic report models.

Models:
    - Report: working copy of the diagnostic report for a project
    - ReportVersion: immutable snapshot taken each time a report is published
"""

from datetime import datetime, timezone

from app.core.constants import ReportStatus
from app.models import db

# Editable report sections -> model attribute
REPORT_SECTIONS = {
    "executive_summary": "executive_summary",
    "cultural_analysis": "cultural_analysis",
    "climate_indicators": "qualitative_analysis",
    "action_plan": "action_plan",
}


class Report(db.Model):
    __tablename__ = "reports"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = db.Column(db.String(300), nullable=False)
    executive_summary = db.Column(db.Text)
    cultural_analysis = db.Column(db.Text)
    qualitative_analysis = db.Column(db.Text)
    action_plan = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=ReportStatus.DRAFT.value)
    version = db.Column(db.Integer, nullable=False, default=1)
    published_at = db.Column(db.DateTime(timezone=True))
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

    project = db.relationship("Project", back_populates="reports")
    versions = db.relationship(
        "ReportVersion", back_populates="report", lazy="dynamic",
        order_by="ReportVersion.version.desc()",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def snapshot(self) -> dict:
        return {
            "title": self.title,
            "executive_summary": self.executive_summary,
            "cultural_analysis": self.cultural_analysis,
            "qualitative_analysis": self.qualitative_analysis,
            "action_plan": self.action_plan,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "created_by_id": self.created_by_id,
            **self.snapshot(),
            "status": self.status,
            "version": self.version,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Report {self.id} v{self.version}: {self.status}>"


class ReportVersion(db.Model):
    __tablename__ = "report_versions"

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(
        db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    content = db.Column(db.JSON, nullable=False, default=dict)
    published_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    report = db.relationship("Report", back_populates="versions")

    __table_args__ = (
        db.UniqueConstraint("report_id", "version", name="uq_report_versions_report_version"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "report_id": self.report_id,
            "version": self.version,
            "content": self.content or {},
            "published_by_id": self.published_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
