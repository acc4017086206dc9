"""
Organizational Diagnostics Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from app.core.constants import NotificationStatus
from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "DOCUMENT_UPLOADED",
    "DOCUMENTS_PENDING",
    "STAGE_ADVANCED",
    "REPORT_PUBLISHED",
    "DEADLINE_APPROACHING",
    "SYSTEM",
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient user per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(40), nullable=False, default="SYSTEM")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    link = db.Column(db.String(500), nullable=True)
    metadata_ = db.Column("metadata", db.JSON, default=dict)
    status = db.Column(db.String(20), nullable=False, default=NotificationStatus.PENDING.value)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def is_read(self) -> bool:
        return self.status == NotificationStatus.READ.value

    def mark_read(self):
        self.status = NotificationStatus.READ.value
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "link": self.link,
            "metadata": self.metadata_ or {},
            "status": self.status,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
