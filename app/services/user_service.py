"""
User administration inside a tenant (ADMIN / SUPER_ADMIN).

Users are listed and edited within the caller's tenant only; a user of
another tenant is reported as missing. Only ``role`` and ``status`` can be
changed here. Granting SUPER_ADMIN needs a SUPER_ADMIN, and nobody changes
their own role or status.
"""

import logging

from sqlalchemy import or_

from app.core.constants import UserRole, UserStatus, enum_values
from app.core.exceptions import ForbiddenError, ValidationError
from app.models import db
from app.models.auth import User
from app.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def list_users(tenant_id: int, *, organization_id: int | None = None, role: str | None = None,
               status: str | None = None, search: str | None = None,
               page: int = 1, per_page: int = 20) -> dict:
    errors = {}
    if role and role not in enum_values(UserRole):
        errors["role"] = f"must be one of {enum_values(UserRole)}"
    if status and status not in enum_values(UserStatus):
        errors["status"] = f"must be one of {enum_values(UserStatus)}"
    if errors:
        raise ValidationError("Invalid filter", details=errors)

    q = User.query.filter_by(tenant_id=tenant_id)
    if organization_id is not None:
        q = q.filter_by(organization_id=organization_id)
    if role:
        q = q.filter_by(role=role)
    if status:
        q = q.filter_by(status=status)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(User.email.ilike(like), User.first_name.ilike(like), User.last_name.ilike(like)))
    total = q.count()
    users = q.order_by(User.first_name, User.last_name, User.id).offset((page - 1) * per_page).limit(per_page)
    return {
        "items": [u.to_dict() for u in users],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


def update_user(tenant_id: int, user_id: int, data: dict, *, actor_id: int, actor_role: str) -> User:
    user = get_scoped(User, user_id, tenant_id=tenant_id)
    changes = {f: data[f] for f in ("role", "status") if f in data}
    if not changes:
        raise ValidationError("Nothing to update", details={"fields": "role or status required"})

    errors = {}
    if "role" in changes and changes["role"] not in enum_values(UserRole):
        errors["role"] = f"must be one of {enum_values(UserRole)}"
    if "status" in changes and changes["status"] not in enum_values(UserStatus):
        errors["status"] = f"must be one of {enum_values(UserStatus)}"
    if errors:
        raise ValidationError("Invalid user data", details=errors)

    if user.id == actor_id:
        raise ValidationError("You cannot change your own role or status")
    if actor_role != UserRole.SUPER_ADMIN.value and UserRole.SUPER_ADMIN.value in (
        changes.get("role"), user.role,
    ):
        raise ForbiddenError("Only a super admin can manage super admins")
    if changes.get("role") == UserRole.CLIENT.value and not user.organization_id:
        raise ValidationError("A client user needs an organization",
                              details={"role": "organization_id missing"})

    for field, value in changes.items():
        setattr(user, field, value)
    db.session.commit()
    logger.info("User %s updated by %s: %s", user.id, actor_id, changes)
    return user
