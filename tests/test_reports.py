"""
Report generation, editing and publishing tests.

The testing config runs the local stub provider, so generation is
deterministic and needs no network.
"""

import pytest

from app.ai.gateway import LLMGateway, LLMProvider, LocalStubProvider
from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.notification import Notification
from app.models.report import Report, ReportVersion
from app.models.scheduling import EmailLog
from app.services import report_service


class _BrokenProvider(LLMProvider):
    name = "broken"

    def chat(self, messages, model, **kwargs):
        raise RuntimeError("provider misconfigured")


class _FlakyProvider(LLMProvider):
    name = "flaky"

    def __init__(self):
        self.calls = 0

    def chat(self, messages, model, **kwargs):
        self.calls += 1
        if self.calls == 1:
            raise ConnectionError("reset by peer")
        return {"content": "ok", "prompt_tokens": 1, "completion_tokens": 1, "model": model}


# ═══════════════════════════════════════════════════════════════
# Gateway
# ═══════════════════════════════════════════════════════════════

class TestGateway:

    def test_local_provider_selected_in_testing(self, app):
        gateway = LLMGateway.from_config(app.config)
        assert isinstance(gateway.provider, LocalStubProvider)

    def test_openai_without_key_falls_back(self):
        gateway = LLMGateway.from_config({"LLM_PROVIDER": "openai", "OPENAI_API_KEY": ""})
        assert gateway.provider.name == "local"

    def test_unknown_provider(self):
        with pytest.raises(RuntimeError):
            LLMGateway.from_config({"LLM_PROVIDER": "carrier-pigeon"})

    def test_stub_echoes_facts(self):
        result = LLMGateway(LocalStubProvider()).chat(
            [{"role": "user", "content": "Facts:\n- Organization: Globex"}], purpose="test",
        )
        assert "- Organization: Globex" in result["content"]
        assert result["provider"] == "local"
        assert "latency_ms" in result

    def test_retries_transient_errors(self, monkeypatch):
        monkeypatch.setattr("app.ai.gateway.threading.Event.wait", lambda self, timeout=None: True)
        provider = _FlakyProvider()
        result = LLMGateway(provider, "m").chat([{"role": "user", "content": "x"}], purpose="test")
        assert result["content"] == "ok"
        assert provider.calls == 2

    def test_configuration_errors_are_not_retried(self):
        with pytest.raises(RuntimeError):
            LLMGateway(_BrokenProvider()).chat([{"role": "user", "content": "x"}], purpose="test")


# ═══════════════════════════════════════════════════════════════
# Service
# ═══════════════════════════════════════════════════════════════

class TestReportService:

    def test_prompt_lists_project_facts(self, organization, project):
        organization.mission = "Grow people"
        db.session.commit()
        prompt = report_service.build_prompt(project)
        assert prompt.startswith("Facts:\n")
        assert "- Organization: Globex" in prompt
        assert "- Mission: Grow people" in prompt
        assert "- Checklist TEAM_LIST: PENDING" in prompt

    def test_generate_creates_draft_with_summary(self, consultant, project):
        report = report_service.generate(project, created_by=consultant.id)
        assert report.status == "DRAFT"
        assert report.version == 1
        assert report.title == f"Diagnostic report: {project.name}"
        assert "Executive summary" in report.executive_summary
        assert project.name in report.executive_summary

    def test_generate_survives_provider_failure(self, project, monkeypatch):
        monkeypatch.setattr(LLMGateway, "from_config", classmethod(lambda cls, cfg: cls(_BrokenProvider())))
        report = report_service.generate(project, title="Manual report")
        assert report.id is not None
        assert report.title == "Manual report"
        assert report.executive_summary is None

    def test_unknown_section(self, project):
        report = report_service.generate(project)
        with pytest.raises(ValidationError):
            report_service.update_section(report, "appendix", "text")

    def test_climate_indicators_maps_to_qualitative_analysis(self, project):
        report = report_service.generate(project)
        report_service.update_section(report, "climate_indicators", "Engagement is high")
        assert report.qualitative_analysis == "Engagement is high"

    def test_section_must_be_text(self, project):
        report = report_service.generate(project)
        with pytest.raises(ValidationError):
            report_service.update_section(report, "action_plan", ["step 1"])

    def test_publish_freezes_version(self, consultant, client_user, project):
        report = report_service.generate(project)
        report_service.update_section(report, "action_plan", "1. Listen")
        v1 = report_service.publish(report, user_id=consultant.id)

        assert v1.version == 1
        assert v1.content["action_plan"] == "1. Listen"
        assert report.version == 2
        assert report.status == "PUBLISHED"
        assert report.published_at is not None

        report_service.update_section(report, "action_plan", "1. Listen\n2. Act")
        assert report.status == "DRAFT"
        v2 = report_service.publish(report, user_id=consultant.id)
        assert v2.version == 2

        db.session.expire_all()
        assert db.session.get(ReportVersion, v1.id).content["action_plan"] == "1. Listen"
        assert [v["version"] for v in report_service.list_versions(report)] == [2, 1]

    def test_publish_notifies_client(self, consultant, client_user, project):
        report = report_service.generate(project)
        report_service.publish(report, user_id=consultant.id)
        assert Notification.query.filter_by(user_id=client_user.id, type="REPORT_PUBLISHED").count() == 1
        log = EmailLog.query.filter_by(template_name="report_published").one()
        assert log.recipient_email == client_user.email

    def test_publish_empty_report_rejected(self, project, monkeypatch):
        monkeypatch.setattr(LLMGateway, "from_config", classmethod(lambda cls, cfg: cls(_BrokenProvider())))
        report = report_service.generate(project)
        with pytest.raises(ValidationError):
            report_service.publish(report)
        assert ReportVersion.query.count() == 0

    def test_get_report_scoped_to_organization(self, project):
        report = report_service.generate(project)
        with pytest.raises(NotFoundError):
            report_service.get_report(project.tenant_id, report.id, organization_id=project.organization_id + 1)


# ═══════════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════════

class TestReportApi:

    def test_generate_and_publish(self, client, consultant, client_user, project, auth_headers):
        staff = auth_headers(consultant)
        res = client.post("/api/v1/reports", json={"project_id": project.id}, headers=staff)
        assert res.status_code == 201
        report_id = res.get_json()["id"]

        res = client.put(f"/api/v1/reports/{report_id}/sections/cultural_analysis",
                         json={"content": "Strong founder culture"}, headers=staff)
        assert res.status_code == 200
        assert res.get_json()["cultural_analysis"] == "Strong founder culture"

        res = client.post(f"/api/v1/reports/{report_id}/publish", headers=staff)
        assert res.status_code == 200
        data = res.get_json()
        assert data["report"]["status"] == "PUBLISHED"
        assert data["version"]["version"] == 1

        res = client.get(f"/api/v1/reports/{report_id}/versions", headers=auth_headers(client_user))
        assert [v["version"] for v in res.get_json()] == [1]

    def test_project_id_required(self, client, consultant, auth_headers):
        res = client.post("/api/v1/reports", json={"project_id": "7"}, headers=auth_headers(consultant))
        assert res.status_code == 422

    def test_client_cannot_generate(self, client, client_user, project, auth_headers):
        res = client.post("/api/v1/reports", json={"project_id": project.id}, headers=auth_headers(client_user))
        assert res.status_code == 403

    def test_client_sees_published_only(self, client, consultant, client_user, project, auth_headers):
        draft = report_service.generate(project, title="Draft")
        published = report_service.generate(project, title="Final")
        report_service.publish(published, user_id=consultant.id)
        headers = auth_headers(client_user)

        res = client.get(f"/api/v1/reports/project/{project.id}", headers=headers)
        assert [r["title"] for r in res.get_json()] == ["Final"]
        assert client.get(f"/api/v1/reports/{draft.id}", headers=headers).status_code == 404
        assert client.get(f"/api/v1/reports/{published.id}", headers=headers).status_code == 200

        res = client.get(f"/api/v1/reports/project/{project.id}", headers=auth_headers(consultant))
        assert len(res.get_json()) == 2

    def test_deleting_project_removes_reports(self, client, admin, project, auth_headers):
        report_service.generate(project)
        client.delete(f"/api/v1/projects/{project.id}", headers=auth_headers(admin))
        assert Report.query.count() == 0
