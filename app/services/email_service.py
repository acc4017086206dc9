"""
Organizational Diagnostics Platform
Outbound email.

Every message goes through ``EmailService.send`` and leaves one EmailLog row
behind. Without ``MAIL_SERVER`` nothing is delivered and the row is marked
``sent`` straight away; development and testing run this way.

SMTP settings come from the Flask config: MAIL_SERVER, MAIL_PORT,
MAIL_USE_TLS, MAIL_USERNAME, MAIL_PASSWORD and MAIL_DEFAULT_SENDER.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

from app.models import db
from app.models.scheduling import EmailLog
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ── Templates ───────────────────────────────────────────────────────────

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: #0f766e; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
        <h2 style="margin: 0; font-size: 18px;">{heading}</h2>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
        {body}
    </div>
    <div style="background: #f1f5f9; padding: 12px 24px; border-radius: 0 0 8px 8px;
                border: 1px solid #e2e8f0; border-top: none; text-align: center;">
        <p style="color: #94a3b8; font-size: 12px; margin: 0;">
            Organizational Diagnostics Platform. Automated message, please do not reply.
        </p>
    </div>
</div>
"""

_BUTTON = (
    '<p style="margin: 24px 0;"><a href="{href}" style="background: #0f766e; color: white; '
    'padding: 10px 18px; border-radius: 6px; text-decoration: none;">{label}</a></p>'
)


def _page(heading: str, body: str) -> str:
    return _LAYOUT.replace("{heading}", heading).replace("{body}", body)


_TEMPLATES: dict[str, dict[str, str]] = {
    "welcome": {
        "subject": "Welcome to the diagnostic of {organization_name}",
        "html": _page(
            "Welcome, {name}",
            "<p>Your consultant has opened the project <strong>{project_name}</strong>.</p>"
            "<p>Set your password to start the onboarding:</p>"
            + _BUTTON.format(href="{link}", label="Activate account")
            + '<p style="color:#64748b;font-size:13px;">This link expires in 24 hours.</p>',
        ),
    },
    "onboarding_reminder": {
        "subject": "Reminder: onboarding for {project_name} is {progress}% complete",
        "html": _page(
            "Your onboarding is waiting",
            "<p>Hello {name},</p>"
            "<p>The onboarding of <strong>{project_name}</strong> is at "
            "<strong>{progress}%</strong>. Please send the remaining documents so the "
            "diagnostic can move on.</p>"
            + _BUTTON.format(href="{link}", label="Continue onboarding"),
        ),
    },
    "stage_advanced": {
        "subject": "{project_name}: onboarding complete",
        "html": _page(
            "Onboarding complete",
            "<p>Hello {name},</p>"
            "<p>All checklist items of <strong>{project_name}</strong> were delivered. "
            "The project moved to <strong>{stage}</strong>.</p>"
            + _BUTTON.format(href="{link}", label="Open project"),
        ),
    },
    "report_published": {
        "subject": "Diagnostic report available: {report_title}",
        "html": _page(
            "Your report is ready",
            "<p>Hello {name},</p>"
            "<p>Version {version} of <strong>{report_title}</strong> for "
            "<strong>{project_name}</strong> has been published.</p>"
            + _BUTTON.format(href="{link}", label="Read the report"),
        ),
    },
    "survey_invitation": {
        "subject": "You are invited to answer: {survey_name}",
        "html": _page(
            "{survey_name}",
            "<p>Hello,</p>"
            "<p><strong>{organization_name}</strong> is running an organizational diagnostic "
            "and would like your view. The questionnaire takes a few minutes.</p>"
            "<p>{anonymity}</p>"
            + _BUTTON.format(href="{link}", label="Answer the survey"),
        ),
    },
    "password_reset": {
        "subject": "Password reset",
        "html": _page(
            "Password reset",
            "<p>Hello {name},</p><p>Use the link below to choose a new password.</p>"
            + _BUTTON.format(href="{link}", label="Reset password")
            + '<p style="color:#64748b;font-size:13px;">This link expires in 24 hours.</p>',
        ),
    },
}


class _SafeDict(dict):
    """Unknown placeholders render as themselves."""

    def __missing__(self, key):
        return "{" + key + "}"


def _render(text: str, context: dict[str, Any]) -> str:
    return text.format_map(_SafeDict(context))


def _build_message(sender: str, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> MIMEMultipart:
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = f"{to_name} <{to_email}>" if to_name else to_email
    message.attach(MIMEText(html_body, "html"))
    return message


def _deliver(message: MIMEMultipart) -> None:
    cfg = current_app.config
    with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=30) as conn:
        if cfg.get("MAIL_USE_TLS", True):
            conn.starttls()
        if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
            conn.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
        conn.send_message(message)


class EmailService:
    """Templated email with one EmailLog row per message."""

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        return _TEMPLATES.get(template_name)

    @staticmethod
    def send(*, to_email: str, subject: str, html_body: str, to_name: str | None = None,
             template_name: str | None = None, category: str = "system",
             project_id: int | None = None) -> EmailLog:
        """
        Deliver one message and record the outcome.

        SMTP and socket errors end up on the log row (status ``failed``)
        instead of propagating. The row is flushed, the caller commits.
        """
        entry = EmailLog(
            recipient_email=to_email, recipient_name=to_name, subject=subject,
            template_name=template_name, category=category, project_id=project_id,
            status="queued",
        )
        db.session.add(entry)
        db.session.flush()

        server = current_app.config.get("MAIL_SERVER")
        if not server:
            logger.info("Email not delivered (no MAIL_SERVER): to=%s template=%s subject=%r",
                        to_email, template_name, subject)
        else:
            sender = current_app.config.get("MAIL_DEFAULT_SENDER") or f"noreply@{server}"
            try:
                _deliver(_build_message(sender, to_email, to_name, subject, html_body))
            except (smtplib.SMTPException, OSError) as exc:
                entry.status = "failed"
                entry.error_message = str(exc)[:1000]
                logger.error("Email to %s failed: %s", to_email, exc)
                return entry
            logger.info("Email delivered: to=%s template=%s", to_email, template_name)

        entry.status = "sent"
        entry.sent_at = utcnow()
        return entry

    @classmethod
    def send_from_template(cls, *, to_email: str, template_name: str, context: dict[str, Any],
                           to_name: str | None = None, category: str = "system",
                           project_id: int | None = None) -> EmailLog | None:
        """Render ``template_name`` with ``context`` and send it; None for an unknown template."""
        template = cls.get_template(template_name)
        if template is None:
            logger.warning("Unknown email template %r, nothing sent to %s", template_name, to_email)
            return None
        return cls.send(
            to_email=to_email, to_name=to_name,
            subject=_render(template["subject"], context),
            html_body=_render(template["html"], context),
            template_name=template_name, category=category, project_id=project_id,
        )
