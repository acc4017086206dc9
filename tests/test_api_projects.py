"""
Project API tests.

Covers:
  - CRUD + role gates + tenant isolation
  - Onboarding settings merge and the derived progress/stage
  - Checklist / progress endpoints and checklist item updates
  - Onboarding reminder endpoints (manual + cron)
  - Request guards (auth, content type, error envelope)
"""

from app.core.constants import UserRole
from app.models import db
from app.models.checklist import DocumentChecklistItem
from app.models.project import Project, ProjectActivity
from app.models.scheduling import EmailLog


def _item_id(project, document_type):
    return DocumentChecklistItem.query.filter_by(
        project_id=project.id, document_type=document_type,
    ).one().id


def _progress(project):
    db.session.expire_all()
    return db.session.get(Project, project.id).progress


def _onboarding(client, project, headers, steps):
    return client.put(
        f"/api/v1/projects/{project.id}",
        json={"settings": {"onboarding": steps}},
        headers=headers,
    )


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════

class TestProjectCrud:

    def test_create_project(self, client, consultant, organization, auth_headers):
        res = client.post("/api/v1/projects", json={
            "name": "Culture diagnostic",
            "organization_id": organization.id,
            "target_end_date": "2027-03-31",
        }, headers=auth_headers(consultant))
        assert res.status_code == 201
        data = res.get_json()
        assert data["code"].startswith("PRJ-")
        assert data["stage"] == "ONBOARDING"
        assert data["status"] == "DRAFT"
        assert data["progress"] == 0
        assert data["consultant_id"] == consultant.id
        assert data["organization_name"] == "Globex"
        assert DocumentChecklistItem.query.filter_by(project_id=data["id"]).count() == 8

    def test_create_requires_name(self, client, consultant, organization, auth_headers):
        res = client.post("/api/v1/projects", json={"organization_id": organization.id},
                          headers=auth_headers(consultant))
        assert res.status_code == 422
        body = res.get_json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"]["name"] == "required"

    def test_create_unknown_organization(self, client, consultant, auth_headers):
        res = client.post("/api/v1/projects", json={"name": "X", "organization_id": 4242},
                          headers=auth_headers(consultant))
        assert res.status_code == 404

    def test_client_cannot_create(self, client, client_user, organization, auth_headers):
        res = client.post("/api/v1/projects", json={"name": "X", "organization_id": organization.id},
                          headers=auth_headers(client_user))
        assert res.status_code == 403

    def test_requires_auth(self, client):
        res = client.get("/api/v1/projects")
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "UNAUTHORIZED"

    def test_list_and_filter(self, client, consultant, project, auth_headers):
        res = client.get("/api/v1/projects?stage=ONBOARDING", headers=auth_headers(consultant))
        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == project.id

        res = client.get("/api/v1/projects?stage=DELIVERED", headers=auth_headers(consultant))
        assert res.get_json()["total"] == 0

    def test_client_sees_only_own_organization(self, client, tenant, consultant, project, client_user,
                                               organization_factory, project_factory, auth_headers):
        other_org = organization_factory(tenant, name="Initech")
        other = project_factory(tenant, other_org, consultant=consultant, name="Other")

        res = client.get("/api/v1/projects", headers=auth_headers(client_user))
        assert [p["id"] for p in res.get_json()["items"]] == [project.id]

        res = client.get(f"/api/v1/projects/{other.id}", headers=auth_headers(client_user))
        assert res.status_code == 404

    def test_other_tenant_gets_404(self, client, project, tenant_factory, user_factory, auth_headers):
        other_tenant = tenant_factory(name="Rival", slug="rival")
        outsider = user_factory(other_tenant, UserRole.ADMIN)
        res = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(outsider))
        assert res.status_code == 404

    def test_update_fields(self, client, consultant, project, auth_headers):
        res = client.put(f"/api/v1/projects/{project.id}", json={
            "name": "Renamed", "status": "IN_PROGRESS",
        }, headers=auth_headers(consultant))
        assert res.status_code == 200
        assert res.get_json()["name"] == "Renamed"
        assert res.get_json()["status"] == "IN_PROGRESS"
        activity = ProjectActivity.query.filter_by(project_id=project.id, action="PROJECT_UPDATED").one()
        assert sorted(activity.metadata_["fields"]) == ["name", "status"]

    def test_invalid_stage_rejected(self, client, consultant, project, auth_headers):
        res = client.put(f"/api/v1/projects/{project.id}", json={"stage": "LAUNCHED"},
                         headers=auth_headers(consultant))
        assert res.status_code == 422

    def test_progress_is_read_only(self, client, consultant, project, auth_headers):
        res = client.put(f"/api/v1/projects/{project.id}", json={"progress": 90},
                         headers=auth_headers(consultant))
        assert res.status_code == 422
        assert _progress(project) == 0

    def test_manual_stage_change_allowed(self, client, consultant, project, auth_headers):
        res = client.put(f"/api/v1/projects/{project.id}", json={"stage": "AI_ANALYSIS"},
                         headers=auth_headers(consultant))
        assert res.status_code == 200
        assert res.get_json()["stage"] == "AI_ANALYSIS"

    def test_delete_requires_admin(self, client, consultant, admin, project, auth_headers):
        project_id = project.id
        res = client.delete(f"/api/v1/projects/{project_id}", headers=auth_headers(consultant))
        assert res.status_code == 403
        res = client.delete(f"/api/v1/projects/{project_id}", headers=auth_headers(admin))
        assert res.status_code == 200
        db.session.expire_all()
        assert db.session.get(Project, project_id) is None
        assert DocumentChecklistItem.query.filter_by(project_id=project_id).count() == 0


# ═══════════════════════════════════════════════════════════════
# Onboarding → progress
# ═══════════════════════════════════════════════════════════════

class TestOnboardingProgress:

    def test_client_culture_step_gives_25(self, client, client_user, project, auth_headers):
        res = _onboarding(client, project, auth_headers(client_user), {"culture": "Informal, founder-led"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["progress"] == 25
        assert data["stage"] == "ONBOARDING"
        assert data["settings"]["onboarding"] == {"culture": "Informal, founder-led"}

    def test_onboarding_merges_key_by_key(self, client, client_user, project, auth_headers):
        headers = auth_headers(client_user)
        _onboarding(client, project, headers, {"culture": "Open"})
        res = _onboarding(client, project, headers, {"team": "COMPLETED_VIA_UPLOAD"})
        data = res.get_json()
        assert data["settings"]["onboarding"] == {"culture": "Open", "team": "COMPLETED_VIA_UPLOAD"}
        assert data["progress"] == 38

    def test_all_steps_move_to_document_collection(self, client, client_user, project, auth_headers):
        res = _onboarding(client, project, auth_headers(client_user), {
            "mission-vision": "COMPLETED_VIA_UPLOAD",
            "culture": "Open",
            "org-chart": "COMPLETED_VIA_UPLOAD",
            "financial": "SKIPPED",
            "goals": "Grow",
            "products": "Services",
            "team": "COMPLETED_VIA_UPLOAD",
        })
        data = res.get_json()
        assert data["progress"] == 100
        assert data["stage"] == "DOCUMENT_COLLECTION"

    def test_unknown_step_rejected(self, client, client_user, project, auth_headers):
        res = _onboarding(client, project, auth_headers(client_user), {"surveys": "done"})
        assert res.status_code == 422
        assert "surveys" in res.get_json()["error"]["details"]["onboarding"]

    def test_non_string_step_rejected(self, client, client_user, project, auth_headers):
        res = _onboarding(client, project, auth_headers(client_user), {"team": 3})
        assert res.status_code == 422

    def test_other_settings_keys_preserved(self, client, consultant, project, auth_headers):
        headers = auth_headers(consultant)
        client.put(f"/api/v1/projects/{project.id}", json={"settings": {"locale": "pt-BR"}}, headers=headers)
        res = _onboarding(client, project, headers, {"goals": "Grow"})
        settings = res.get_json()["settings"]
        assert settings["locale"] == "pt-BR"
        assert settings["onboarding"] == {"goals": "Grow"}

    def test_client_cannot_change_other_fields(self, client, client_user, project, auth_headers):
        res = client.put(f"/api/v1/projects/{project.id}", json={"name": "Mine now"},
                         headers=auth_headers(client_user))
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# Checklist endpoints
# ═══════════════════════════════════════════════════════════════

class TestChecklistEndpoints:

    def test_get_checklist(self, client, client_user, project, auth_headers):
        res = client.get(f"/api/v1/projects/{project.id}/checklist", headers=auth_headers(client_user))
        assert res.status_code == 200
        items = res.get_json()
        assert [i["document_type"] for i in items] == [
            "MISSION_VISION_VALUES", "CULTURE_FACTORS", "ORGANIZATIONAL_CHART", "GOALS_OBJECTIVES",
            "PRODUCTS_SERVICES", "TEAM_LIST", "POLICY_MANUAL", "FINANCIAL_DATA",
        ]

    def test_checklist_read_seeds_missing_items(self, client, consultant, project, auth_headers):
        DocumentChecklistItem.query.filter_by(project_id=project.id).delete()
        db.session.commit()
        res = client.get(f"/api/v1/projects/{project.id}/checklist", headers=auth_headers(consultant))
        assert len(res.get_json()) == 8

    def test_progress_reflects_organization_mission(self, client, consultant, organization, project,
                                                    auth_headers):
        organization.mission = "Help people grow"
        db.session.commit()
        res = client.get(f"/api/v1/projects/{project.id}/progress", headers=auth_headers(consultant))
        data = res.get_json()
        assert data["progress"] == 13
        assert data["stage"] == "ONBOARDING"
        assert len(data["checklist"]) == 8

    def test_text_answer(self, client, client_user, project, auth_headers):
        item_id = _item_id(project, "GOALS_OBJECTIVES")
        res = client.put(f"/api/v1/projects/checklist-items/{item_id}/text",
                         json={"content": "Reach 50 clients"}, headers=auth_headers(client_user))
        assert res.status_code == 200
        assert res.get_json()["status"] == "UPLOADED"
        assert res.get_json()["content"] == "Reach 50 clients"
        assert _progress(project) == 13

    def test_text_answer_requires_content(self, client, client_user, project, auth_headers):
        item_id = _item_id(project, "GOALS_OBJECTIVES")
        res = client.put(f"/api/v1/projects/checklist-items/{item_id}/text",
                         json={"content": "  "}, headers=auth_headers(client_user))
        assert res.status_code == 422

    def test_review_status(self, client, consultant, client_user, project, auth_headers):
        item_id = _item_id(project, "GOALS_OBJECTIVES")
        client.put(f"/api/v1/projects/checklist-items/{item_id}/text",
                   json={"content": "Reach 50 clients"}, headers=auth_headers(client_user))

        res = client.put(f"/api/v1/projects/checklist-items/{item_id}/status",
                         json={"status": "REJECTED", "notes": "Too vague"}, headers=auth_headers(consultant))
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "REJECTED"
        assert data["validation_notes"] == "Too vague"
        assert [h["to_status"] for h in data["history"]] == ["UPLOADED", "REJECTED"]
        assert _progress(project) == 0

    def test_client_cannot_review(self, client, client_user, project, auth_headers):
        item_id = _item_id(project, "GOALS_OBJECTIVES")
        res = client.put(f"/api/v1/projects/checklist-items/{item_id}/status",
                         json={"status": "VALIDATED"}, headers=auth_headers(client_user))
        assert res.status_code == 403

    def test_activities(self, client, consultant, project, auth_headers):
        res = client.get(f"/api/v1/projects/{project.id}/activities", headers=auth_headers(consultant))
        assert res.status_code == 200
        assert res.get_json()[0]["action"] == "PROJECT_CREATED"


# ═══════════════════════════════════════════════════════════════
# Onboarding reminders
# ═══════════════════════════════════════════════════════════════

class TestReminderEndpoints:

    def test_manual_reminder(self, client, consultant, client_user, project, auth_headers):
        res = client.post(f"/api/v1/projects/{project.id}/onboarding-reminder",
                          headers=auth_headers(consultant))
        assert res.status_code == 200
        data = res.get_json()
        assert data["recipient"] == client_user.email
        assert data["email_status"] == "sent"

    def test_cron_requires_secret(self, client, project):
        res = client.post("/api/v1/projects/process-onboarding-reminders")
        assert res.status_code == 401
        res = client.post("/api/v1/projects/process-onboarding-reminders",
                          headers={"X-Cron-Secret": "wrong"})
        assert res.status_code == 401
        assert EmailLog.query.count() == 0

    def test_cron_runs_batch(self, client, project, cron_headers):
        res = client.post("/api/v1/projects/process-onboarding-reminders", headers=cron_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["success"] is True
        assert data["processed"] == 1
        assert data["sent"] == 1
        assert data["failed"] == 0


# ═══════════════════════════════════════════════════════════════
# Request guards
# ═══════════════════════════════════════════════════════════════

class TestRequestGuards:

    def test_non_json_body_rejected(self, client, consultant, auth_headers):
        res = client.post("/api/v1/projects", data="name=x", content_type="text/plain",
                          headers=auth_headers(consultant))
        assert res.status_code == 415

    def test_unknown_route_envelope(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["success"] is False

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
        assert res.headers.get("X-Request-ID")
