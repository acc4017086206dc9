"""
Interview Blueprint: diagnostic interviews and their AI analysis.

Prefix: /api/v1/interviews

  GET    ?project_id=<pid>      - interviews of a project
  GET    /<id>                  - detail
  POST   ""                     - { "project_id", "interviewee_name", ... }
  POST   /<id>/transcription    - { "transcription": "..." }
  POST   /<id>/analyze          - AI analysis of the transcript
  DELETE /<id>                  - delete with the stored transcript

CLIENT users see their organization's interviews without the confidential
fields (interviewee identity, raw transcript).
"""

from flask import Blueprint, jsonify, request

from app.blueprints import json_body
from app.core.constants import UserRole
from app.core.exceptions import ValidationError
from app.middleware.permission_required import (
    client_organization_scope,
    current_tenant_id,
    current_user_id,
    is_client,
    require_auth,
    require_role,
)
from app.services import interview_service, project_service

interview_bp = Blueprint("interview", __name__, url_prefix="/api/v1/interviews")

STAFF = (UserRole.ADMIN, UserRole.CONSULTANT)


def _interview(interview_id):
    return interview_service.get_interview(
        current_tenant_id(), interview_id, organization_id=client_organization_scope(),
    )


@interview_bp.route("", methods=["GET"])
@require_auth
def list_interviews():
    project_id = request.args.get("project_id", type=int)
    if project_id is None:
        raise ValidationError("project_id is required", details={"project_id": "required"})
    project = project_service.get_project(
        current_tenant_id(), project_id, organization_id=client_organization_scope(),
    )
    return jsonify(interview_service.list_for_project(project, include_confidential=not is_client()))


@interview_bp.route("/<int:interview_id>", methods=["GET"])
@require_auth
def get_interview(interview_id):
    return jsonify(_interview(interview_id).to_dict(include_confidential=not is_client()))


@interview_bp.route("", methods=["POST"])
@require_role(*STAFF)
def create_interview():
    data = json_body()
    if not isinstance(data.get("project_id"), int):
        raise ValidationError("project_id is required", details={"project_id": "required"})
    project = project_service.get_project(current_tenant_id(), data["project_id"])
    interview = interview_service.create_interview(project, data, user_id=current_user_id())
    return jsonify(interview.to_dict()), 201


@interview_bp.route("/<int:interview_id>/transcription", methods=["POST"])
@require_role(*STAFF)
def upload_transcription(interview_id):
    interview = interview_service.upload_transcription(
        _interview(interview_id), json_body().get("transcription"),
    )
    return jsonify(interview.to_dict())


@interview_bp.route("/<int:interview_id>/analyze", methods=["POST"])
@require_role(*STAFF)
def analyze_interview(interview_id):
    interview = interview_service.analyze(_interview(interview_id))
    return jsonify(interview.to_dict())


@interview_bp.route("/<int:interview_id>", methods=["DELETE"])
@require_role(*STAFF)
def delete_interview(interview_id):
    interview_service.delete_interview(_interview(interview_id))
    return jsonify({"message": "Interview deleted"})
