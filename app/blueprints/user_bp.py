"""
User administration Blueprint (ADMIN / SUPER_ADMIN).

  GET /api/v1/users          - list (?organization_id=&role=&status=&search=&page=&per_page=)
  PUT /api/v1/users/<id>     - { "role"?, "status"? }
"""

from flask import Blueprint, g, jsonify, request

from app.blueprints import json_body, page_args
from app.core.constants import UserRole
from app.middleware.permission_required import current_tenant_id, current_user_id, require_role
from app.services import user_service

user_bp = Blueprint("user", __name__, url_prefix="/api/v1/users")


@user_bp.route("", methods=["GET"])
@require_role(UserRole.ADMIN)
def list_users():
    page, per_page = page_args()
    return jsonify(user_service.list_users(
        current_tenant_id(),
        organization_id=request.args.get("organization_id", type=int),
        role=request.args.get("role"),
        status=request.args.get("status"),
        search=request.args.get("search"),
        page=page,
        per_page=per_page,
    ))


@user_bp.route("/<int:user_id>", methods=["PUT"])
@require_role(UserRole.ADMIN)
def update_user(user_id):
    user = user_service.update_user(
        current_tenant_id(), user_id, json_body(),
        actor_id=current_user_id(), actor_role=g.jwt_role,
    )
    return jsonify(user.to_dict())
