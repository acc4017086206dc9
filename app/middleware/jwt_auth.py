"""
JWT Auth Middleware: parses the bearer token and sets g.jwt_*.

The hook never rejects a request by itself: it only populates the request
context. Routes opt into authentication with the decorators in
``app.middleware.permission_required``.

    g.jwt_user_id          int | None
    g.jwt_tenant_id        int | None
    g.jwt_organization_id  int | None (CLIENT users)
    g.jwt_role             str | None
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/forgot-password",
    "/api/v1/auth/reset-password",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_tenant_id = None
        g.jwt_organization_id = None
        g.jwt_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired JWT on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Invalid JWT on %s: %s", path, exc)
            return

        try:
            g.jwt_user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            return
        g.jwt_tenant_id = payload.get("tenant_id")
        g.jwt_organization_id = payload.get("organization_id")
        g.jwt_role = payload.get("role")
