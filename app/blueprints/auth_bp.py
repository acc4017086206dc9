"""
Auth Blueprint: JWT authentication endpoints.

  POST /api/v1/auth/login            - Email + password → access token
  POST /api/v1/auth/register         - Create a user in the caller's tenant (ADMIN)
  POST /api/v1/auth/forgot-password  - Email a reset link (always 200)
  POST /api/v1/auth/reset-password   - One-time token + new password
  GET  /api/v1/auth/me               - Current user profile
"""

from flask import Blueprint, g, jsonify

from app.blueprints import json_body
from app.core.constants import UserRole
from app.core.exceptions import ValidationError
from app.middleware.permission_required import (
    current_tenant_id,
    current_user_id,
    require_auth,
    require_role,
)
from app.services import auth_service
from app.services.tenant_service import get_tenant
from app.utils.helpers import log_and_continue

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "email": "...", "password": "...", "tenant_slug": "..."? }
    """
    data = json_body()
    return jsonify(auth_service.authenticate(
        data.get("email"), data.get("password"), data.get("tenant_slug") or None,
    ))


@auth_bp.route("/register", methods=["POST"])
@require_role(UserRole.ADMIN)
def register():
    """
    Create a user. Without ``password`` the account starts PENDING and the
    user receives an activation link by email.

    SUPER_ADMIN may pass ``tenant_id`` to create users in another tenant.
    """
    data = json_body()
    tenant_id = current_tenant_id()
    if g.jwt_role == UserRole.SUPER_ADMIN.value and data.get("tenant_id"):
        if not isinstance(data["tenant_id"], int):
            raise ValidationError("tenant_id must be an integer", details={"tenant_id": "invalid"})
        tenant_id = get_tenant(data["tenant_id"]).id

    user, raw_token = auth_service.register_user(tenant_id, data, actor_role=g.jwt_role)
    if raw_token:
        log_and_continue("Welcome email", auth_service.send_welcome_email, user, raw_token,
                         rollback=True)
    return jsonify(user.to_dict()), 201


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    data = json_body()
    auth_service.request_password_reset(data.get("email"), data.get("tenant_slug") or None)
    return jsonify({"message": "If the account exists, a reset link was sent."})


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    """Body: { "token": "...", "password": "..." }"""
    data = json_body()
    user = auth_service.reset_password(data.get("token"), data.get("password"))
    return jsonify({"message": "Password updated", "user": user.to_dict()})


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    user = auth_service.get_current_user(current_user_id(), current_tenant_id())
    return jsonify(user.to_dict())
