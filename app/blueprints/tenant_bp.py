"""
Tenant Blueprint: SUPER_ADMIN management of consulting firms.

  GET  /api/v1/tenants        - paginated list (?search=&page=&per_page=)
  POST /api/v1/tenants        - create (optionally with its first admin)
  GET  /api/v1/tenants/<id>   - detail with counts
"""

from flask import Blueprint, jsonify, request

from app.blueprints import json_body, page_args
from app.core.constants import UserRole
from app.middleware.permission_required import require_role
from app.services import tenant_service

tenant_bp = Blueprint("tenant", __name__, url_prefix="/api/v1/tenants")


@tenant_bp.route("", methods=["GET"])
@require_role(UserRole.SUPER_ADMIN)
def list_tenants():
    page, per_page = page_args()
    return jsonify(tenant_service.list_tenants(page, per_page, request.args.get("search")))


@tenant_bp.route("", methods=["POST"])
@require_role(UserRole.SUPER_ADMIN)
def create_tenant():
    """
    Body: { "name", "slug"?, "settings"?, "admin"?: {email, first_name, last_name?, password?} }
    """
    tenant, admin = tenant_service.create_tenant(json_body())
    body = tenant.to_dict()
    body["admin"] = admin.to_dict() if admin else None
    return jsonify(body), 201


@tenant_bp.route("/<int:tenant_id>", methods=["GET"])
@require_role(UserRole.SUPER_ADMIN)
def get_tenant(tenant_id):
    return jsonify(tenant_service.tenant_detail(tenant_service.get_tenant(tenant_id)))
