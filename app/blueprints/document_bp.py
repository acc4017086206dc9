"""
Document Blueprint: client document uploads and consultant review.

Prefix: /api/v1/documents

  GET    /project/<pid>      - documents of a project
  GET    /<id>               - metadata
  GET    /<id>/url           - signed download URL
  POST   ""                  - multipart upload (file, project_id, document_type, ...)
  PUT    /<id>/validate      - { "status": "APPROVED" | "REJECTED", "notes"? }
  DELETE /<id>               - remove document and stored file
"""

from flask import Blueprint, jsonify, request

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
from app.services import document_service, project_service

document_bp = Blueprint("document", __name__, url_prefix="/api/v1/documents")

STAFF = (UserRole.ADMIN, UserRole.CONSULTANT)


def _document(document_id):
    return document_service.get_document(
        current_tenant_id(), document_id, organization_id=client_organization_scope(),
    )


def _int_form(name):
    raw = request.form.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", details={name: "invalid"}) from None


@document_bp.route("/project/<int:project_id>", methods=["GET"])
@require_auth
def list_project_documents(project_id):
    project = project_service.get_project(
        current_tenant_id(), project_id, organization_id=client_organization_scope(),
    )
    return jsonify(document_service.list_for_project(project))


@document_bp.route("/<int:document_id>", methods=["GET"])
@require_auth
def get_document(document_id):
    return jsonify(_document(document_id).to_dict())


@document_bp.route("/<int:document_id>/url", methods=["GET"])
@require_auth
def get_document_url(document_id):
    document = _document(document_id)
    expires_in = min(request.args.get("expires_in", 3600, type=int) or 3600, 86400)
    return jsonify({
        "id": document.id,
        "url": document_service.get_download_url(document, expires_in),
        "expires_in": expires_in,
    })


@document_bp.route("", methods=["POST"])
@require_auth
def upload_document():
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("file is required", details={"file": "required"})
    project_id = _int_form("project_id")
    if project_id is None:
        raise ValidationError("project_id is required", details={"project_id": "required"})

    project = project_service.get_project(
        current_tenant_id(), project_id, organization_id=client_organization_scope(),
    )
    document = document_service.upload_document(
        project,
        content=upload.read(),
        file_name=upload.filename or "",
        mime_type=upload.mimetype,
        document_type=request.form.get("document_type", ""),
        name=request.form.get("name"),
        description=request.form.get("description"),
        checklist_item_id=_int_form("checklist_item_id"),
        uploaded_by=current_user_id(),
    )
    return jsonify(document.to_dict()), 201


@document_bp.route("/<int:document_id>/validate", methods=["PUT"])
@require_role(*STAFF)
def validate_document(document_id):
    data = json_body()
    document = document_service.get_document(current_tenant_id(), document_id)
    document_service.review_document(
        document, data.get("status"), user_id=current_user_id(), notes=data.get("notes"),
    )
    return jsonify(document.to_dict())


@document_bp.route("/<int:document_id>", methods=["DELETE"])
@require_auth
def delete_document(document_id):
    document_service.delete_document(_document(document_id))
    return jsonify({"deleted": True, "id": document_id})
