"""
Platform-wide exception hierarchy.

Services raise these types; the application factory registers a single
handler for ``AppError`` that turns any of them into the standard error body:

    {"success": false, "error": {"code": "...", "message": "...", "details": {...}}}

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class AppError(Exception):
    """Base class for expected, client-facing errors.

    Subclasses override ``status_code`` and ``code``. Anything that is not an
    AppError reaching the top-level handler is treated as an internal error.
    """

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str = "Bad request", details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"success": False, "error": body}


class NotFoundError(AppError):
    """Raised when a requested resource does not exist within the given scope.

    Used for both genuinely missing records and cross-tenant access attempts,
    so a caller cannot discover ids that belong to another tenant.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Document").
        resource_id: The PK that was looked up. Logged, not returned.
        tenant_id: Optional scope that was enforced. Logged, not returned.
    """

    status_code = 404
    code = "NOT_FOUND"

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        super().__init__(f"{resource} not found")

    def __str__(self) -> str:
        msg = self.resource
        if self.resource_id is not None:
            msg += f" id={self.resource_id}"
        msg += " not found"
        if self.tenant_id is not None:
            msg += f" (tenant={self.tenant_id})"
        return msg


class ValidationError(AppError):
    """Raised when well-formed input violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown (field name -> problem).
    """

    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message, details)


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)


class ConflictError(AppError):
    """Raised when an operation would violate a uniqueness rule.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    status_code = 409
    code = "CONFLICT"

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with this {field} already exists", details={"field": field})


class UpstreamError(AppError):
    """Raised when an external provider (LLM, storage) fails a user-initiated call."""

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str = "External service unavailable") -> None:
        super().__init__(message)
