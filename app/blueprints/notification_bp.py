"""
Notification Blueprint: the caller's in-app notifications.

Prefix: /api/v1/notifications

  GET    ""                 - list (?unread=true&limit=&offset=)
  GET    /unread-count      - {"count": n}
  PATCH  /<id>/read         - mark one as read
  PATCH  /read-all          - mark all as read
  DELETE /<id>              - delete one
  POST   /scheduler         - deadline + pending-document scans (X-Cron-Secret)
"""

import logging

from flask import Blueprint, jsonify, request

from app.middleware.permission_required import current_user_id, require_auth, require_cron_secret
from app.models import db
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1/notifications")


@notification_bp.route("", methods=["GET"])
@require_auth
def list_notifications():
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
    except (ValueError, TypeError):
        limit = 50
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")

    items, total = NotificationService.list_for_user(
        current_user_id(), unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total,
                    "limit": limit, "offset": offset})


@notification_bp.route("/unread-count", methods=["GET"])
@require_auth
def unread_count():
    return jsonify({"count": NotificationService.unread_count(current_user_id())})


@notification_bp.route("/<int:notification_id>/read", methods=["PATCH"])
@require_auth
def mark_read(notification_id):
    return jsonify(NotificationService.mark_read(current_user_id(), notification_id).to_dict())


@notification_bp.route("/read-all", methods=["PATCH"])
@require_auth
def mark_all_read():
    return jsonify({"updated": NotificationService.mark_all_read(current_user_id())})


@notification_bp.route("/<int:notification_id>", methods=["DELETE"])
@require_auth
def delete_notification(notification_id):
    NotificationService.delete(current_user_id(), notification_id)
    return jsonify({"deleted": True, "id": notification_id})


@notification_bp.route("/scheduler", methods=["POST"])
@require_cron_secret
def run_scheduler():
    """Run the periodic scans; one failing scan does not stop the other."""
    results = {}
    for name, task in (("deadlines", NotificationService.check_project_deadlines),
                       ("pending_documents", NotificationService.check_pending_documents)):
        try:
            results[name] = task()
        except Exception as exc:
            db.session.rollback()
            logger.exception("Scheduler task %s failed", name)
            results[name] = {"error": str(exc)}
    return jsonify({"success": True, "results": results})
