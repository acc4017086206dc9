"""
Survey Blueprint: diagnostic questionnaires.

Prefix: /api/v1/surveys

Public (no token):
  GET  /public/<code>                 - questionnaire for the response form
  POST /public/<code>/respond         - { "answers": [...], "token"? }

Authenticated (CLIENT: own organization only):
  GET  ?project_id=<pid>              - surveys of a project with counts
  GET  /<id>                          - detail with sections and questions
  GET  /<id>/responses                - submitted responses
  GET  /<id>/statistics               - response rate and per-question figures

Staff:
  POST   ""                           - create
  PUT    /<id>                        - partial update
  POST   /<id>/send-invitations       - { "emails": [...] }
  DELETE /<id>                        - delete with responses and invitations
"""

from flask import Blueprint, g, jsonify, request

from app.blueprints import json_body
from app.core.constants import UserRole
from app.core.exceptions import ValidationError
from app.middleware.permission_required import (
    client_organization_scope,
    current_tenant_id,
    current_user_id,
    require_auth,
    require_role,
)
from app.services import project_service, survey_service

survey_bp = Blueprint("survey", __name__, url_prefix="/api/v1/surveys")

STAFF = (UserRole.ADMIN, UserRole.CONSULTANT)


def _survey(survey_id):
    return survey_service.get_survey(
        current_tenant_id(), survey_id, organization_id=client_organization_scope(),
    )


# ── Public ───────────────────────────────────────────────────────────────


@survey_bp.route("/public/<code>", methods=["GET"])
def get_public_survey(code):
    survey = survey_service.get_by_access_code(code)
    data = survey.to_dict()
    data.pop("project_id")
    return jsonify(data)


@survey_bp.route("/public/<code>/respond", methods=["POST"])
def submit_response(code):
    response = survey_service.submit_response(
        code, json_body(), respondent_id=getattr(g, "jwt_user_id", None),
    )
    return jsonify({"id": response.id, "submitted_at": response.submitted_at.isoformat()}), 201


# ── Authenticated ────────────────────────────────────────────────────────


@survey_bp.route("", methods=["GET"])
@require_auth
def list_surveys():
    project_id = request.args.get("project_id", type=int)
    if project_id is None:
        raise ValidationError("project_id is required", details={"project_id": "required"})
    project = project_service.get_project(
        current_tenant_id(), project_id, organization_id=client_organization_scope(),
    )
    return jsonify(survey_service.list_for_project(project))


@survey_bp.route("/<int:survey_id>", methods=["GET"])
@require_auth
def get_survey(survey_id):
    return jsonify(_survey(survey_id).to_dict())


@survey_bp.route("/<int:survey_id>/responses", methods=["GET"])
@require_auth
def list_responses(survey_id):
    return jsonify(survey_service.list_responses(_survey(survey_id)))


@survey_bp.route("/<int:survey_id>/statistics", methods=["GET"])
@require_auth
def get_statistics(survey_id):
    return jsonify(survey_service.get_statistics(_survey(survey_id)))


# ── Staff ────────────────────────────────────────────────────────────────


@survey_bp.route("", methods=["POST"])
@require_role(*STAFF)
def create_survey():
    data = json_body()
    if not isinstance(data.get("project_id"), int):
        raise ValidationError("project_id is required", details={"project_id": "required"})
    project = project_service.get_project(current_tenant_id(), data["project_id"])
    survey = survey_service.create_survey(project, data, user_id=current_user_id())
    return jsonify(survey.to_dict()), 201


@survey_bp.route("/<int:survey_id>", methods=["PUT"])
@require_role(*STAFF)
def update_survey(survey_id):
    survey = survey_service.update_survey(_survey(survey_id), json_body())
    return jsonify(survey.to_dict())


@survey_bp.route("/<int:survey_id>/send-invitations", methods=["POST"])
@require_role(*STAFF)
def send_invitations(survey_id):
    count = survey_service.send_invitations(_survey(survey_id), json_body().get("emails"))
    return jsonify({"sent": count})


@survey_bp.route("/<int:survey_id>", methods=["DELETE"])
@require_role(*STAFF)
def delete_survey(survey_id):
    survey_service.delete_survey(_survey(survey_id))
    return jsonify({"message": "Survey deleted"})
