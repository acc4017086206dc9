"""
Report Blueprint: AI-assisted diagnostic reports.

Prefix: /api/v1/reports

  GET  /project/<pid>               - reports of a project (CLIENT: published only)
  GET  /<id>                        - report detail
  POST ""                           - { "project_id", "title"? } → AI draft
  PUT  /<id>/sections/<section>     - { "content": "..." }
  POST /<id>/publish                - snapshot + notify the client
  GET  /<id>/versions               - published snapshots, newest first
"""

from flask import Blueprint, jsonify

from app.blueprints import json_body
from app.core.constants import ReportStatus, UserRole
from app.core.exceptions import NotFoundError, ValidationError
from app.middleware.permission_required import (
    client_organization_scope,
    current_tenant_id,
    current_user_id,
    is_client,
    require_auth,
    require_role,
)
from app.services import project_service, report_service

report_bp = Blueprint("report", __name__, url_prefix="/api/v1/reports")

STAFF = (UserRole.ADMIN, UserRole.CONSULTANT)


def _report(report_id):
    report = report_service.get_report(
        current_tenant_id(), report_id, organization_id=client_organization_scope(),
    )
    # clients only ever see published reports
    if is_client() and report.status != ReportStatus.PUBLISHED.value:
        raise NotFoundError("Report", report_id)
    return report


@report_bp.route("/project/<int:project_id>", methods=["GET"])
@require_auth
def list_project_reports(project_id):
    project = project_service.get_project(
        current_tenant_id(), project_id, organization_id=client_organization_scope(),
    )
    reports = report_service.list_for_project(project)
    if is_client():
        reports = [r for r in reports if r["status"] == ReportStatus.PUBLISHED.value]
    return jsonify(reports)


@report_bp.route("/<int:report_id>", methods=["GET"])
@require_auth
def get_report(report_id):
    return jsonify(_report(report_id).to_dict())


@report_bp.route("", methods=["POST"])
@require_role(*STAFF)
def generate_report():
    data = json_body()
    if not isinstance(data.get("project_id"), int):
        raise ValidationError("project_id is required", details={"project_id": "required"})
    project = project_service.get_project(current_tenant_id(), data["project_id"])
    report = report_service.generate(project, title=data.get("title"), created_by=current_user_id())
    return jsonify(report.to_dict()), 201


@report_bp.route("/<int:report_id>/sections/<section>", methods=["PUT"])
@require_role(*STAFF)
def update_section(report_id, section):
    report = report_service.get_report(current_tenant_id(), report_id)
    report_service.update_section(report, section, json_body().get("content"))
    return jsonify(report.to_dict())


@report_bp.route("/<int:report_id>/publish", methods=["POST"])
@require_role(*STAFF)
def publish_report(report_id):
    report = report_service.get_report(current_tenant_id(), report_id)
    version = report_service.publish(report, user_id=current_user_id())
    return jsonify({"report": report.to_dict(), "version": version.to_dict()})


@report_bp.route("/<int:report_id>/versions", methods=["GET"])
@require_auth
def list_versions(report_id):
    return jsonify(report_service.list_versions(_report(report_id)))
