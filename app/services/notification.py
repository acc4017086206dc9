"""
Organizational Diagnostics Platform
Notification Service.

Central service for creating and querying in-app notifications, plus the
event hooks (document uploaded, stage advanced, report published) and the
scheduler scans (approaching deadlines, documents awaiting validation).

Event hooks are best-effort: callers wrap them in ``log_and_continue`` after
their own commit, so a failed notification never undoes a state change.
"""

import logging
from datetime import date, timedelta

from sqlalchemy import func

from app.core.constants import DocumentStatus, NotificationStatus, ProjectStatus
from app.core.exceptions import NotFoundError
from app.models import db
from app.models.document import Document
from app.models.notification import Notification
from app.models.project import Project
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

DEADLINE_WINDOW_DAYS = 3
PENDING_DOCUMENT_HOURS = 24
DEDUP_HOURS = 24


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, title, message="", type="SYSTEM", link=None, metadata=None,
               commit=True):
        """
        Create a single notification record.

        Returns:
            The created Notification instance.
        """
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link=link,
            metadata_=metadata or {},
            status=NotificationStatus.SENT.value,
        )
        db.session.add(notif)
        if commit:
            db.session.commit()
        return notif

    @staticmethod
    def broadcast(*, user_ids, title, message="", type="SYSTEM", link=None, metadata=None):
        """Send the same notification to several users (duplicates and None skipped)."""
        notifications = []
        for uid in dict.fromkeys(u for u in user_ids if u):
            notifications.append(NotificationService.create(
                user_id=uid, title=title, message=message, type=type,
                link=link, metadata=metadata, commit=False,
            ))
        db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a user, newest first. Returns (items, total)."""
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter(Notification.status != NotificationStatus.READ.value)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter(
            Notification.user_id == user_id,
            Notification.status != NotificationStatus.READ.value,
        ).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def _get_own(user_id, notification_id):
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notif is None:
            raise NotFoundError("Notification", notification_id)
        return notif

    @staticmethod
    def mark_read(user_id, notification_id):
        notif = NotificationService._get_own(user_id, notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications of a user as read. Returns the number updated."""
        count = Notification.query.filter(
            Notification.user_id == user_id,
            Notification.status != NotificationStatus.READ.value,
        ).update(
            {"status": NotificationStatus.READ.value, "read_at": utcnow()},
            synchronize_session="fetch",
        )
        db.session.commit()
        return count

    @staticmethod
    def delete(user_id, notification_id):
        notif = NotificationService._get_own(user_id, notification_id)
        db.session.delete(notif)
        db.session.commit()

    # ── Event hooks ───────────────────────────────────────────────────────

    @staticmethod
    def notify_document_uploaded(document, project):
        """Tell the project's consultant that the client delivered a document."""
        if not project.consultant_id:
            return None
        return NotificationService.create(
            user_id=project.consultant_id,
            type="DOCUMENT_UPLOADED",
            title=f"New document in {project.name}",
            message=f"{document.name} ({document.document_type}) is waiting for validation.",
            link=f"/projects/{project.id}/documents",
            metadata={"project_id": project.id, "document_id": document.id},
        )

    @staticmethod
    def notify_stage_advanced(project):
        """Tell consultant and client that onboarding finished."""
        return NotificationService.broadcast(
            user_ids=[project.consultant_id, project.client_user_id],
            type="STAGE_ADVANCED",
            title=f"{project.name}: onboarding complete",
            message=f"All checklist items were delivered. Stage is now {project.stage}.",
            link=f"/projects/{project.id}",
            metadata={"project_id": project.id, "stage": project.stage},
        )

    @staticmethod
    def notify_report_published(report, project, version):
        return NotificationService.broadcast(
            user_ids=[project.client_user_id],
            type="REPORT_PUBLISHED",
            title=f"Report published: {report.title}",
            message=f"Version {version} of the diagnostic report is available.",
            link=f"/reports/{report.id}",
            metadata={"project_id": project.id, "report_id": report.id},
        )

    # ── Scheduler scans ───────────────────────────────────────────────────

    @staticmethod
    def _recently_notified(user_id, type, link) -> bool:
        cutoff = utcnow() - timedelta(hours=DEDUP_HOURS)
        return db.session.query(
            Notification.query.filter(
                Notification.user_id == user_id,
                Notification.type == type,
                Notification.link == link,
                Notification.created_at >= cutoff,
            ).exists()
        ).scalar()

    @staticmethod
    def check_project_deadlines(today: date | None = None):
        """Warn consultants about IN_PROGRESS projects due within the window.

        Returns:
            {"checked": n, "notified": n}
        """
        today = today or utcnow().date()
        horizon = today + timedelta(days=DEADLINE_WINDOW_DAYS)
        projects = Project.query.filter(
            Project.status == ProjectStatus.IN_PROGRESS.value,
            Project.target_end_date.is_not(None),
            Project.target_end_date >= today,
            Project.target_end_date <= horizon,
        ).all()

        notified = 0
        for project in projects:
            if not project.consultant_id:
                continue
            link = f"/projects/{project.id}"
            if NotificationService._recently_notified(project.consultant_id, "DEADLINE_APPROACHING", link):
                continue
            days_left = (project.target_end_date - today).days
            NotificationService.create(
                user_id=project.consultant_id,
                type="DEADLINE_APPROACHING",
                title=f"{project.name} is due in {days_left} day(s)",
                message=f"Target end date: {project.target_end_date.isoformat()}.",
                link=link,
                metadata={"project_id": project.id, "days_left": days_left},
                commit=False,
            )
            notified += 1
        db.session.commit()
        logger.info("Deadline scan: checked=%d notified=%d", len(projects), notified)
        return {"checked": len(projects), "notified": notified}

    @staticmethod
    def check_pending_documents():
        """Remind consultants of documents awaiting validation for too long.

        One notification per project, not per document.
        """
        cutoff = utcnow() - timedelta(hours=PENDING_DOCUMENT_HOURS)
        rows = (
            db.session.query(Document.project_id, func.count(Document.id))
            .filter(
                Document.status == DocumentStatus.UPLOADED.value,
                Document.created_at <= cutoff,
            )
            .group_by(Document.project_id)
            .all()
        )

        notified = 0
        for project_id, count in rows:
            project = db.session.get(Project, project_id)
            if project is None or not project.consultant_id:
                continue
            link = f"/projects/{project.id}/documents"
            if NotificationService._recently_notified(project.consultant_id, "DOCUMENTS_PENDING", link):
                continue
            NotificationService.create(
                user_id=project.consultant_id,
                type="DOCUMENTS_PENDING",
                title=f"{count} document(s) awaiting validation in {project.name}",
                message=f"Documents have been waiting for more than {PENDING_DOCUMENT_HOURS} hours.",
                link=link,
                metadata={"project_id": project.id, "count": count},
                commit=False,
            )
            notified += 1
        db.session.commit()
        logger.info("Pending-document scan: projects=%d notified=%d", len(rows), notified)
        return {"projects": len(rows), "notified": notified}
