"""
Organization Blueprint: client companies of the tenant.

  GET    /api/v1/organizations         - list (?search=&page=&per_page=)
  POST   /api/v1/organizations         - create
  GET    /api/v1/organizations/<id>    - detail
  PUT    /api/v1/organizations/<id>    - partial update
  DELETE /api/v1/organizations/<id>    - delete (only without projects)

CLIENT users can read and edit their own organization only.
"""

from flask import Blueprint, jsonify, request

from app.blueprints import json_body, page_args
from app.core.constants import UserRole
from app.core.exceptions import NotFoundError
from app.middleware.permission_required import (
    client_organization_scope,
    current_tenant_id,
    require_auth,
    require_role,
)
from app.services import organization_service

organization_bp = Blueprint("organization", __name__, url_prefix="/api/v1/organizations")

STAFF = (UserRole.ADMIN, UserRole.CONSULTANT)


def _own_organization(organization_id):
    scope = client_organization_scope()
    if scope is not None and scope != organization_id:
        raise NotFoundError("Organization", organization_id)


@organization_bp.route("", methods=["GET"])
@require_role(*STAFF)
def list_organizations():
    page, per_page = page_args()
    return jsonify(organization_service.list_organizations(
        current_tenant_id(), search=request.args.get("search"), page=page, per_page=per_page,
    ))


@organization_bp.route("", methods=["POST"])
@require_role(*STAFF)
def create_organization():
    org = organization_service.create_organization(current_tenant_id(), json_body())
    return jsonify(org.to_dict()), 201


@organization_bp.route("/<int:organization_id>", methods=["GET"])
@require_auth
def get_organization(organization_id):
    _own_organization(organization_id)
    org = organization_service.get_organization(current_tenant_id(), organization_id)
    return jsonify(org.to_dict())


@organization_bp.route("/<int:organization_id>", methods=["PUT"])
@require_auth
def update_organization(organization_id):
    _own_organization(organization_id)
    org = organization_service.update_organization(current_tenant_id(), organization_id, json_body())
    return jsonify(org.to_dict())


@organization_bp.route("/<int:organization_id>", methods=["DELETE"])
@require_role(UserRole.ADMIN)
def delete_organization(organization_id):
    organization_service.delete_organization(current_tenant_id(), organization_id)
    return jsonify({"deleted": True, "id": organization_id})
