"""
Tenant Context Middleware: enforces tenant state on API requests.

When a JWT-authenticated user makes a request:
  1. g.jwt_tenant_id is already set by the jwt_auth middleware
  2. This middleware verifies the tenant exists and is active
  3. Sets g.tenant for easy access to the Tenant row

Requests without a JWT are left alone; route decorators decide whether
authentication is required.

Chain order:
  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, request

from app.core.constants import UserRole
from app.models import db
from app.models.auth import Tenant
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None

        if not request.path.startswith("/api/v1/"):
            return None

        tenant_id = getattr(g, "jwt_tenant_id", None)
        if tenant_id is None:
            return None

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            logger.warning("JWT tenant_id %s not found in DB", tenant_id)
            return api_error(E.FORBIDDEN, "Tenant not found")

        if not tenant.is_active:
            # Super admins can still operate when their tenant is frozen
            if getattr(g, "jwt_role", None) != UserRole.SUPER_ADMIN.value:
                logger.warning("JWT tenant_id %s is deactivated", tenant_id)
                return api_error(E.FORBIDDEN, "Tenant account is deactivated")
            logger.info("Frozen tenant %s, allowing super admin", tenant_id)

        g.tenant = tenant
        return None
