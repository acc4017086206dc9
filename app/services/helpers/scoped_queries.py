"""
Tenant-scoped query helpers.

Every get-by-id in the services goes through these helpers instead of
``db.session.get(Model, pk)``: a bare ``get`` ignores the tenant boundary.

Usage:
    org = get_scoped(Organization, org_id, tenant_id=tenant_id)
    project = get_scoped(Project, project_id, tenant_id=tenant_id,
                         organization_id=client_org_id)

Each keyword argument names a column on the model. Passing a scope the model
does not have raises ValueError so the mistake surfaces in tests instead of
silently turning into an unscoped lookup.
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError
from app.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, **scopes):
    """Fetch a single entity by PK with mandatory scope filters.

    Scope values of ``None`` are ignored, but at least one non-None scope is
    required. Cross-scope access is indistinguishable from a missing row:
    both raise NotFoundError.

    Raises:
        ValueError: no scope supplied, or a scope names a missing column.
        NotFoundError: entity missing or outside the scope.
    """
    applied = {k: v for k, v in scopes.items() if v is not None}
    if not applied:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter; "
            "unscoped lookups bypass tenant isolation."
        )
    unknown = sorted(k for k in applied if not hasattr(model, k))
    if unknown:
        raise ValueError(f"{model.__name__} has no scope column(s) {unknown}")

    stmt = select(model).where(model.id == pk)
    for field, value in applied.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in scope %s", model.__name__, pk, applied)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result
