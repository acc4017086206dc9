"""
Project Blueprint: projects, onboarding checklist and reminders.

Prefix: /api/v1/projects

  GET    ""                                  - list (?status=&stage=&consultant_id=&search=)
  POST   ""                                  - create (seeds the checklist)
  GET    /<id>                               - detail
  PUT    /<id>                               - partial update; re-syncs the checklist
  DELETE /<id>                               - delete with documents and reports
  GET    /<id>/checklist                     - checklist items (seeded, re-synced)
  GET    /<id>/progress                      - {progress, stage, checklist}
  GET    /<id>/activities                    - activity feed
  POST   /<id>/onboarding-reminder           - email the client now
  PUT    /checklist-items/<item_id>/text     - answer a text-only item
  PUT    /checklist-items/<item_id>/status   - consultant validation
  POST   /process-onboarding-reminders       - scheduler (X-Cron-Secret)

CLIENT users only see projects of their organization and may only change
``settings`` (onboarding answers) on update.
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import json_body, page_args
from app.core.constants import UserRole
from app.core.exceptions import ForbiddenError, ValidationError
from app.middleware.permission_required import (
    client_organization_scope,
    current_tenant_id,
    current_user_id,
    is_client,
    require_auth,
    require_cron_secret,
    require_role,
)
from app.services import project_service
from app.services.checklist_service import set_item_status, update_item_text

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1/projects")

STAFF = (UserRole.ADMIN, UserRole.CONSULTANT)
CLIENT_UPDATABLE = {"settings"}


def _project(project_id):
    return project_service.get_project(
        current_tenant_id(), project_id, organization_id=client_organization_scope(),
    )


# ═══════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════

@project_bp.route("", methods=["GET"])
@require_auth
def list_projects():
    page, per_page = page_args()
    return jsonify(project_service.list_projects(
        current_tenant_id(),
        organization_id=client_organization_scope() or request.args.get("organization_id", type=int),
        status=request.args.get("status"),
        stage=request.args.get("stage"),
        consultant_id=request.args.get("consultant_id", type=int),
        search=request.args.get("search"),
        page=page,
        per_page=per_page,
    ))


@project_bp.route("", methods=["POST"])
@require_role(*STAFF)
def create_project():
    project = project_service.create_project(current_tenant_id(), json_body(), created_by=current_user_id())
    return jsonify(project.to_dict()), 201


@project_bp.route("/<int:project_id>", methods=["GET"])
@require_auth
def get_project(project_id):
    return jsonify(_project(project_id).to_dict())


@project_bp.route("/<int:project_id>", methods=["PUT"])
@require_auth
def update_project(project_id):
    data = json_body()
    if is_client():
        extra = sorted(set(data) - CLIENT_UPDATABLE)
        if extra:
            raise ForbiddenError(f"Clients cannot change: {', '.join(extra)}")
    if "progress" in data:
        raise ValidationError("progress is derived from the checklist and cannot be set",
                              details={"progress": "read-only"})

    project = project_service.update_project(
        current_tenant_id(), project_id, data,
        user_id=current_user_id(),
        organization_id=client_organization_scope(),
    )
    return jsonify(project.to_dict())


@project_bp.route("/<int:project_id>", methods=["DELETE"])
@require_role(UserRole.ADMIN)
def delete_project(project_id):
    project_service.delete_project(current_tenant_id(), project_id)
    return jsonify({"deleted": True, "id": project_id})


# ═══════════════════════════════════════════════════════════════
# Checklist / progress
# ═══════════════════════════════════════════════════════════════

@project_bp.route("/<int:project_id>/checklist", methods=["GET"])
@require_auth
def get_checklist(project_id):
    return jsonify(project_service.get_checklist(_project(project_id)))


@project_bp.route("/<int:project_id>/progress", methods=["GET"])
@require_auth
def get_progress(project_id):
    return jsonify(project_service.get_progress(_project(project_id)))


@project_bp.route("/<int:project_id>/activities", methods=["GET"])
@require_auth
def list_activities(project_id):
    limit = min(request.args.get("limit", 50, type=int) or 50, 200)
    return jsonify(project_service.list_activities(_project(project_id), limit=limit))


@project_bp.route("/checklist-items/<int:item_id>/text", methods=["PUT"])
@require_auth
def update_checklist_text(item_id):
    """Body: { "content": "..." }"""
    data = json_body()
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content is required", details={"content": "required"})

    item = project_service.get_checklist_item(
        current_tenant_id(), item_id, organization_id=client_organization_scope(),
    )
    update_item_text(item, content.strip(), user_id=current_user_id())
    return jsonify(item.to_dict())


@project_bp.route("/checklist-items/<int:item_id>/status", methods=["PUT"])
@require_role(*STAFF)
def update_checklist_status(item_id):
    """Body: { "status": "VALIDATED" | "REJECTED", "notes"? }"""
    data = json_body()
    item = project_service.get_checklist_item(current_tenant_id(), item_id)
    set_item_status(item, data.get("status"), user_id=current_user_id(), notes=data.get("notes"))
    return jsonify(item.to_dict())


# ═══════════════════════════════════════════════════════════════
# Onboarding reminders
# ═══════════════════════════════════════════════════════════════

@project_bp.route("/<int:project_id>/onboarding-reminder", methods=["POST"])
@require_role(*STAFF)
def send_onboarding_reminder(project_id):
    project = project_service.get_project(current_tenant_id(), project_id)
    return jsonify(project_service.resend_onboarding_reminder(project, user_id=current_user_id()))


@project_bp.route("/process-onboarding-reminders", methods=["POST"])
@require_cron_secret
def process_onboarding_reminders():
    results = project_service.process_onboarding_reminders()
    return jsonify({"success": True, **results})
