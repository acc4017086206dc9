"""
Auth service: login, user registration, activation and password reset.

Rules:
  - Only ACTIVE users with a matching bcrypt hash can log in. Every failure
    mode returns the same "Invalid credentials" message.
  - Users created without a password start PENDING and receive a one-time
    activation link (24 h). Setting a password through that link activates
    the account.
  - One-time tokens are stored as sha256 hashes.
  - Emails are unique per tenant.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from app.core.constants import UserRole, UserStatus
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    UnauthorizedError,
    ValidationError,
)
from app.models import db
from app.models.auth import Tenant, User
from app.services.email_service import EmailService
from app.services.helpers.scoped_queries import get_scoped
from app.services.jwt_service import generate_reset_token, hash_token, token_response
from app.utils.crypto import hash_password, verify_password
from app.utils.helpers import as_utc, log_and_continue, utcnow

logger = logging.getLogger(__name__)

RESET_TOKEN_HOURS = 24
MIN_PASSWORD_LENGTH = 8


def _normalize_email(email) -> str:
    return (email or "").strip().lower()


def _validate_password(password) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must have at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too_short"},
        )
    return password


# ═════════════════════════════════════════════════════════════════════════
# Login
# ═════════════════════════════════════════════════════════════════════════


def authenticate(email: str, password: str, tenant_slug: str | None = None) -> dict:
    """Validate credentials and return the token response.

    ``tenant_slug`` is required only when the email exists in more than one tenant.
    """
    email = _normalize_email(email)
    if not email or not password:
        raise ValidationError("email and password are required")

    q = User.query.filter(func.lower(User.email) == email)
    if tenant_slug:
        q = q.join(Tenant, Tenant.id == User.tenant_id).filter(Tenant.slug == tenant_slug)
    candidates = q.all()
    if len(candidates) > 1:
        raise ValidationError("tenant is required for this account", details={"tenant": "required"})

    user = candidates[0] if candidates else None
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        raise UnauthorizedError("Invalid credentials")
    if user.status != UserStatus.ACTIVE.value:
        logger.info("Login refused for %s: status=%s", email, user.status)
        raise UnauthorizedError("Invalid credentials")
    if user.tenant is not None and not user.tenant.is_active and user.role != UserRole.SUPER_ADMIN.value:
        raise UnauthorizedError("Tenant account is deactivated")

    user.last_login_at = utcnow()
    db.session.commit()
    logger.info("User %s logged in (tenant=%s)", user.id, user.tenant_id)
    return token_response(user)


def get_current_user(user_id: int, tenant_id: int) -> User:
    return get_scoped(User, user_id, tenant_id=tenant_id)


# ═════════════════════════════════════════════════════════════════════════
# Registration
# ═════════════════════════════════════════════════════════════════════════


def issue_activation_token(user: User) -> str:
    """Store a fresh one-time token on the user and return the raw value. Does not commit."""
    raw = generate_reset_token()
    user.reset_token = hash_token(raw)
    user.reset_token_expires_at = utcnow() + timedelta(hours=RESET_TOKEN_HOURS)
    return raw


def activation_link(raw_token: str) -> str:
    return f"{current_app.config['FRONTEND_URL']}/reset-password?token={raw_token}"


def register_user(tenant_id: int, data: dict, *, actor_role: str) -> tuple[User, str | None]:
    """Create a user inside ``tenant_id``.

    Returns ``(user, raw_activation_token)``; the token is None when a password
    was supplied (the account is ACTIVE right away). Does not send email.
    """
    email = _normalize_email(data.get("email"))
    first_name = (data.get("first_name") or "").strip()
    errors = {}
    if not email or "@" not in email:
        errors["email"] = "invalid"
    if not first_name:
        errors["first_name"] = "required"
    role = data.get("role") or UserRole.CLIENT.value
    if role not in {r.value for r in UserRole}:
        errors["role"] = "invalid"
    if errors:
        raise ValidationError("Invalid user data", details=errors)

    if role == UserRole.SUPER_ADMIN.value and actor_role != UserRole.SUPER_ADMIN.value:
        raise ForbiddenError("Only a super admin can create super admins")

    organization_id = data.get("organization_id")
    if role == UserRole.CLIENT.value and not organization_id:
        raise ValidationError("organization_id is required for client users",
                              details={"organization_id": "required"})
    if organization_id:
        from app.models.organization import Organization
        get_scoped(Organization, organization_id, tenant_id=tenant_id)

    if User.query.filter(User.tenant_id == tenant_id, func.lower(User.email) == email).first():
        raise ConflictError("User", "email", email)

    user = User(
        tenant_id=tenant_id,
        organization_id=organization_id,
        email=email,
        first_name=first_name,
        last_name=(data.get("last_name") or "").strip(),
        phone=data.get("phone") or None,
        role=role,
    )
    raw_token = None
    if data.get("password"):
        user.password_hash = hash_password(_validate_password(data["password"]))
        user.status = UserStatus.ACTIVE.value
    else:
        user.status = UserStatus.PENDING.value
        raw_token = issue_activation_token(user)

    db.session.add(user)
    db.session.commit()
    logger.info("User %s registered in tenant %s (role=%s status=%s)", user.id, tenant_id, role, user.status)
    return user, raw_token


def invite_client(tenant_id: int, organization_id: int, data: dict) -> tuple[User, str | None]:
    """Return the CLIENT user for ``data['email']``, creating a PENDING one if needed."""
    email = _normalize_email(data.get("email"))
    existing = User.query.filter(User.tenant_id == tenant_id, func.lower(User.email) == email).first()
    if existing is not None:
        if existing.role != UserRole.CLIENT.value:
            raise ConflictError("User", "email", email)
        return existing, None
    payload = {**data, "role": UserRole.CLIENT.value, "organization_id": organization_id}
    payload.pop("password", None)
    return register_user(tenant_id, payload, actor_role=UserRole.ADMIN.value)


def send_welcome_email(user: User, raw_token: str, *, project=None) -> None:
    EmailService.send_from_template(
        to_email=user.email,
        to_name=user.full_name,
        template_name="welcome",
        context={
            "name": user.first_name,
            "project_name": project.name if project else "",
            "organization_name": project.organization.name if project and project.organization else "",
            "link": activation_link(raw_token),
        },
        category="account",
        project_id=project.id if project else None,
    )
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════
# Password reset / activation
# ═════════════════════════════════════════════════════════════════════════


def request_password_reset(email: str, tenant_slug: str | None = None) -> None:
    """Email a reset link if the account exists. Silent otherwise."""
    email = _normalize_email(email)
    q = User.query.filter(func.lower(User.email) == email,
                          User.status != UserStatus.INACTIVE.value)
    if tenant_slug:
        q = q.join(Tenant, Tenant.id == User.tenant_id).filter(Tenant.slug == tenant_slug)
    users = q.all()
    if len(users) != 1:
        logger.info("Password reset requested for %s: %d matching account(s)", email, len(users))
        return
    user = users[0]
    raw = issue_activation_token(user)
    db.session.commit()
    log_and_continue(
        "Password reset email",
        _send_reset_email, user, raw,
        rollback=True,
    )


def _send_reset_email(user: User, raw_token: str) -> None:
    EmailService.send_from_template(
        to_email=user.email,
        to_name=user.full_name,
        template_name="password_reset",
        context={"name": user.first_name, "link": activation_link(raw_token)},
        category="account",
    )
    db.session.commit()


def reset_password(raw_token: str, new_password: str) -> User:
    """Consume a one-time token, set the password and activate a PENDING account."""
    if not raw_token:
        raise ValidationError("token is required", details={"token": "required"})
    _validate_password(new_password)

    user = User.query.filter_by(reset_token=hash_token(raw_token)).first()
    expires = as_utc(user.reset_token_expires_at) if user else None
    if user is None or expires is None or expires < utcnow():
        raise ValidationError("Invalid or expired token", details={"token": "invalid"})

    user.password_hash = hash_password(new_password)
    user.reset_token = None
    user.reset_token_expires_at = None
    if user.status == UserStatus.PENDING.value:
        user.status = UserStatus.ACTIVE.value
    db.session.commit()
    logger.info("Password set for user %s (status=%s)", user.id, user.status)
    return user
