"""
Permission Decorators: JWT-aware role checks for route protection.

Usage:
    @bp.route("/projects", methods=["POST"])
    @require_role(UserRole.ADMIN, UserRole.CONSULTANT)
    def create_project():
        ...

    @bp.route("/projects/process-onboarding-reminders", methods=["POST"])
    @require_cron_secret
    def process_reminders():
        ...

SUPER_ADMIN passes every role check. The decorators raise AppError
subclasses, so the response uses the standard error envelope.
"""

import functools
import hmac
import logging

from flask import current_app, g, request

from app.core.constants import UserRole
from app.core.exceptions import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

CRON_SECRET_HEADER = "X-Cron-Secret"


def current_user_id() -> int:
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        raise UnauthorizedError()
    return user_id


def current_tenant_id() -> int:
    tenant_id = getattr(g, "jwt_tenant_id", None)
    if tenant_id is None:
        raise UnauthorizedError()
    return tenant_id


def is_client() -> bool:
    return getattr(g, "jwt_role", None) == UserRole.CLIENT.value


def client_organization_scope() -> int | None:
    """Organization a CLIENT is confined to; None for staff roles.

    A CLIENT token without an organization gets -1, which matches nothing.
    """
    if not is_client():
        return None
    return getattr(g, "jwt_organization_id", None) or -1


def require_auth(f):
    """Decorator: require a valid JWT."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        current_user_id()
        return f(*args, **kwargs)
    return decorated


def require_role(*roles):
    """
    Decorator: require the JWT user to hold one of ``roles``.

    Args:
        roles: UserRole members or their string values.
    """
    allowed = {UserRole(r).value for r in roles} | {UserRole.SUPER_ADMIN.value}

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = current_user_id()
            role = getattr(g, "jwt_role", None)
            if role not in allowed:
                logger.warning(
                    "User %s denied: role %s not in %s on %s",
                    user_id, role, sorted(allowed), f.__name__,
                )
                raise ForbiddenError()
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_cron_secret(f):
    """
    Decorator: require the shared scheduler secret in the X-Cron-Secret header.

    When CRON_SECRET is not configured the endpoint is closed.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        expected = current_app.config.get("CRON_SECRET")
        provided = request.headers.get(CRON_SECRET_HEADER, "")
        if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
            logger.warning("Rejected scheduler call to %s: bad or missing cron secret", request.path)
            raise UnauthorizedError("Invalid cron secret")
        return f(*args, **kwargs)
    return decorated
