"""
Report service: AI-assisted diagnostic reports.

Rules:
  - ``generate`` creates a DRAFT report whose executive summary is drafted
    by the LLM gateway from the project, its organization and its checklist.
    A failing provider leaves the summary empty; the report is still created.
  - Sections are edited one at a time. Editing a PUBLISHED report turns the
    working copy back into a DRAFT; published versions are never touched.
  - ``publish`` freezes the current content into ReportVersion ``version``,
    bumps the working copy's version and marks it PUBLISHED. The client
    email and in-app notification are best-effort.
"""

import logging

from flask import current_app

from app.ai.gateway import LLMGateway
from app.core.constants import ReportStatus
from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.project import Project
from app.models.report import REPORT_SECTIONS, Report, ReportVersion
from app.services.checklist_service import list_items
from app.services.email_service import EmailService
from app.services.helpers.scoped_queries import get_scoped
from app.services.notification import NotificationService
from app.utils.helpers import log_and_continue, utcnow

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an organizational diagnostics consultant. Write a concise executive "
    "summary (3 to 5 paragraphs) for the client's leadership, based only on the "
    "facts provided. Point out missing information instead of inventing it."
)
MAX_SECTION_LENGTH = 50_000


def list_for_project(project: Project) -> list[dict]:
    reports = project.reports.order_by(Report.created_at.desc(), Report.id.desc()).all()
    return [r.to_dict() for r in reports]


def get_report(tenant_id: int, report_id: int, *, organization_id: int | None = None) -> Report:
    report = get_scoped(Report, report_id, tenant_id=tenant_id)
    if organization_id is not None and report.project.organization_id != organization_id:
        raise NotFoundError("Report", report_id, tenant_id)
    return report


def list_versions(report: Report) -> list[dict]:
    return [v.to_dict() for v in report.versions.all()]


# ═════════════════════════════════════════════════════════════════════════
# Generation
# ═════════════════════════════════════════════════════════════════════════


def build_prompt(project: Project) -> str:
    """Facts about the project as a bullet list for the LLM."""
    org = project.organization
    facts = [f"Project: {project.name} ({project.code}), stage {project.stage}, progress {project.progress}%"]
    if org is not None:
        facts.append(f"Organization: {org.name}" + (f", industry {org.industry}" if org.industry else ""))
        for field in ("mission", "vision", "values"):
            value = getattr(org, field)
            if value:
                facts.append(f"{field.capitalize()}: {value}")
    for item in list_items(project.id):
        line = f"Checklist {item.document_type}: {item.status}"
        if item.content:
            line += f" ({item.content[:500]})"
        facts.append(line)
    for step, value in sorted(project.onboarding.items()):
        if value:
            facts.append(f"Onboarding {step}: {value}")
    return "Facts:\n" + "\n".join(f"- {f}" for f in facts)


def _draft_executive_summary(project: Project) -> str:
    gateway = LLMGateway.from_config(current_app.config)
    result = gateway.chat(
        [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(project)},
        ],
        purpose="executive_summary",
    )
    return result["content"]


def generate(project: Project, *, title: str | None = None, created_by: int | None = None) -> Report:
    summary = log_and_continue("AI executive summary", _draft_executive_summary, project)
    report = Report(
        tenant_id=project.tenant_id,
        project_id=project.id,
        created_by_id=created_by,
        title=(title or "").strip() or f"Diagnostic report: {project.name}",
        executive_summary=summary,
        status=ReportStatus.DRAFT.value,
        version=1,
    )
    db.session.add(report)
    db.session.commit()
    logger.info("Report %s generated for project %s (summary=%s)",
                report.id, project.id, "yes" if summary else "no")
    return report


# ═════════════════════════════════════════════════════════════════════════
# Editing / publishing
# ═════════════════════════════════════════════════════════════════════════


def update_section(report: Report, section: str, content) -> Report:
    attr = REPORT_SECTIONS.get(section)
    if attr is None:
        raise ValidationError(
            f"Unknown report section: {section}",
            details={"section": f"must be one of {sorted(REPORT_SECTIONS)}"},
        )
    if content is not None and not isinstance(content, str):
        raise ValidationError("content must be a string", details={"content": "invalid"})
    if content and len(content) > MAX_SECTION_LENGTH:
        raise ValidationError("content is too long", details={"content": f"max {MAX_SECTION_LENGTH}"})

    setattr(report, attr, content)
    if report.status == ReportStatus.PUBLISHED.value:
        report.status = ReportStatus.DRAFT.value
    db.session.commit()
    logger.info("Report %s section %s updated", report.id, section)
    return report


def publish(report: Report, *, user_id: int | None = None) -> ReportVersion:
    if not any(report.snapshot()[k] for k in ("executive_summary", "cultural_analysis",
                                                  "qualitative_analysis", "action_plan")):
        raise ValidationError("Cannot publish an empty report")

    published = report.version
    snapshot = ReportVersion(
        report_id=report.id,
        version=published,
        content=report.snapshot(),
        published_by_id=user_id,
    )
    db.session.add(snapshot)
    report.version = published + 1
    report.status = ReportStatus.PUBLISHED.value
    report.published_at = utcnow()
    db.session.commit()
    logger.info("Report %s published as version %s", report.id, published)

    project = report.project
    log_and_continue("Report-published email", _email_client, report, project, published,
                     rollback=True)
    log_and_continue("Report-published notification",
                     NotificationService.notify_report_published, report, project, published,
                     rollback=True)
    return snapshot


def _email_client(report: Report, project: Project, version: int) -> None:
    client = project.client_user
    if client is None:
        return
    EmailService.send_from_template(
        to_email=client.email,
        to_name=client.full_name,
        template_name="report_published",
        context={
            "name": client.first_name,
            "report_title": report.title,
            "project_name": project.name,
            "version": version,
            "link": f"{current_app.config['FRONTEND_URL']}/reports/{report.id}",
        },
        category="report",
        project_id=project.id,
    )
    db.session.commit()
