"""
Blueprint registry and shared request helpers.
"""

from flask import request

from app.core.exceptions import ValidationError


def page_args(default_per_page=20, max_per_page=100):
    """Read ``page`` / ``per_page`` query params.

    Returns:
        (page, per_page), page >= 1 and per_page capped at max_per_page.
    """
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        per_page = min(max(int(request.args.get("per_page", default_per_page)), 1), max_per_page)
    except (ValueError, TypeError):
        per_page = default_per_page
    return page, per_page


def json_body() -> dict:
    """Request JSON object; any other JSON value is a 422."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_blueprints(app):
    from app.blueprints.auth_bp import auth_bp
    from app.blueprints.document_bp import document_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.interview_bp import interview_bp
    from app.blueprints.notification_bp import notification_bp
    from app.blueprints.organization_bp import organization_bp
    from app.blueprints.project_bp import project_bp
    from app.blueprints.report_bp import report_bp
    from app.blueprints.survey_bp import survey_bp
    from app.blueprints.tenant_bp import tenant_bp
    from app.blueprints.user_bp import user_bp

    for bp in (auth_bp, tenant_bp, user_bp, organization_bp, project_bp, document_bp,
               survey_bp, interview_bp, report_bp, notification_bp, health_bp):
        app.register_blueprint(bp)
