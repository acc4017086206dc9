"""
EmailService tests: template rendering, dev-mode logging and SMTP failures.
"""

import smtplib

import pytest

from app.models.scheduling import EmailLog
from app.services.email_service import EmailService

TEMPLATES = [
    "welcome", "onboarding_reminder", "stage_advanced", "report_published",
    "survey_invitation", "password_reset",
]


class _FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        _FakeSMTP.sent.append(msg)


class _RefusingSMTP(_FakeSMTP):

    def __init__(self, host, port, timeout=None):
        raise OSError("connection refused")


class TestTemplates:

    @pytest.mark.parametrize("name", TEMPLATES)
    def test_template_defined(self, name):
        template = EmailService.get_template(name)
        assert template["subject"]
        assert "{link}" in template["html"]

    def test_missing_context_keys_kept(self):
        log = EmailService.send_from_template(
            to_email="a@b.test", template_name="onboarding_reminder",
            context={"progress": 38},
        )
        assert log.subject == "Reminder: onboarding for {project_name} is 38% complete"

    def test_unknown_template(self):
        assert EmailService.send_from_template(to_email="a@b.test", template_name="nope", context={}) is None
        assert EmailLog.query.count() == 0


class TestDelivery:

    def test_dev_mode_logs_as_sent(self):
        log = EmailService.send(to_email="a@b.test", subject="Hi", html_body="<p>x</p>")
        assert log.id is not None
        assert log.status == "sent"
        assert log.sent_at is not None

    def test_smtp_delivery(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.test")
        monkeypatch.setattr(smtplib, "SMTP", _FakeSMTP)
        _FakeSMTP.sent = []
        log = EmailService.send(to_email="a@b.test", to_name="Ana", subject="Hi", html_body="<p>x</p>")
        assert log.status == "sent"
        assert _FakeSMTP.sent[0]["To"] == "Ana <a@b.test>"

    def test_smtp_failure_recorded(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.test")
        monkeypatch.setattr(smtplib, "SMTP", _RefusingSMTP)
        log = EmailService.send(to_email="a@b.test", subject="Hi", html_body="<p>x</p>")
        assert log.status == "failed"
        assert "connection refused" in log.error_message
