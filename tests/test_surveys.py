"""
Survey tests: staff CRUD, the public response form, statistics and
invitations.
"""

from datetime import timedelta

import pytest

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.scheduling import EmailLog
from app.models.survey import Survey, SurveyAnswer, SurveyInvitation, SurveyQuestion, SurveyResponse
from app.services import survey_service
from app.utils.helpers import utcnow

CLIMATE = {
    "type": "CLIMATE",
    "name": "Climate 2026",
    "instructions": "Answer honestly.",
    "sections": [
        {
            "title": "Leadership",
            "indicator": "leadership",
            "questions": [
                {"text": "How clear are the goals?", "type": "SCALE"},
                {"text": "Preferred channel", "type": "SINGLE_CHOICE", "options": ["Email", "Chat"]},
            ],
        },
    ],
    "questions": [{"text": "Anything else?", "type": "TEXTAREA", "is_required": False}],
}


def _create(client, project, headers, **overrides):
    return client.post("/api/v1/surveys", json={"project_id": project.id, **CLIMATE, **overrides},
                       headers=headers)


@pytest.fixture()
def survey(project, consultant):
    return survey_service.create_survey(project, {**CLIMATE, "status": "ACTIVE"}, user_id=consultant.id)


def _questions(survey):
    return {q.text: q for q in survey.questions}


def _answers(survey, scale=4):
    qs = _questions(survey)
    return [
        {"question_id": qs["How clear are the goals?"].id, "numeric_value": scale},
        {"question_id": qs["Preferred channel"].id, "value": "Chat"},
    ]


# ═══════════════════════════════════════════════════════════════
# Staff API
# ═══════════════════════════════════════════════════════════════

class TestSurveyApi:

    def test_create_builds_sections(self, client, consultant, project, auth_headers):
        res = _create(client, project, auth_headers(consultant))
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "DRAFT"
        assert data["is_anonymous"] is True
        assert len(data["access_code"]) == 8
        assert data["access_code"] == data["access_code"].upper()
        assert [s["title"] for s in data["sections"]] == ["Leadership", "Questions"]
        assert [q["type"] for q in data["sections"][0]["questions"]] == ["SCALE", "SINGLE_CHOICE"]
        assert data["sections"][1]["questions"][0]["is_required"] is False

    def test_create_validation(self, client, consultant, project, auth_headers):
        res = _create(client, project, auth_headers(consultant), name="X", type="POLL",
                      questions=[{"text": "Pick", "type": "MULTIPLE_CHOICE"}])
        assert res.status_code == 422
        details = res.get_json()["error"]["details"]
        assert set(details) >= {"name", "type", "questions[0].options"}

    def test_client_cannot_create(self, client, client_user, project, auth_headers):
        assert _create(client, project, auth_headers(client_user)).status_code == 403

    def test_list_by_project_with_counts(self, client, consultant, project, survey, auth_headers):
        res = client.get(f"/api/v1/surveys?project_id={project.id}", headers=auth_headers(consultant))
        assert res.status_code == 200
        item = res.get_json()[0]
        assert item["id"] == survey.id
        assert item["response_count"] == 0
        assert item["invitation_count"] == 0
        assert "sections" not in item

    def test_list_requires_project_id(self, client, consultant, auth_headers):
        assert client.get("/api/v1/surveys", headers=auth_headers(consultant)).status_code == 422

    def test_client_scope(self, client, tenant, client_user, survey, organization_factory,
                          user_factory, auth_headers):
        assert client.get(f"/api/v1/surveys/{survey.id}",
                          headers=auth_headers(client_user)).status_code == 200
        other_org = organization_factory(tenant, name="Initech")
        outsider = user_factory(tenant, "CLIENT", organization=other_org, email="x@initech.test")
        assert client.get(f"/api/v1/surveys/{survey.id}",
                          headers=auth_headers(outsider)).status_code == 404

    def test_update_and_delete(self, client, consultant, survey, auth_headers):
        headers = auth_headers(consultant)
        res = client.put(f"/api/v1/surveys/{survey.id}", json={"name": "Climate Q3", "status": "CLOSED"},
                         headers=headers)
        assert res.status_code == 200
        assert res.get_json()["name"] == "Climate Q3"
        assert res.get_json()["status"] == "CLOSED"

        survey_id = survey.id
        assert client.delete(f"/api/v1/surveys/{survey_id}", headers=headers).status_code == 200
        db.session.expire_all()
        assert db.session.get(Survey, survey_id) is None
        assert SurveyQuestion.query.count() == 0

    def test_dates_must_be_ordered(self, client, consultant, project, auth_headers):
        res = _create(client, project, auth_headers(consultant),
                      starts_at="2026-11-10T00:00:00Z", ends_at="2026-11-01T00:00:00Z")
        assert res.status_code == 422
        assert "ends_at" in res.get_json()["error"]["details"]


# ═══════════════════════════════════════════════════════════════
# Public form
# ═══════════════════════════════════════════════════════════════

class TestPublicResponses:

    def test_get_by_code_without_token(self, client, survey):
        res = client.get(f"/api/v1/surveys/public/{survey.access_code.lower()}")
        assert res.status_code == 200
        data = res.get_json()
        assert data["name"] == "Climate 2026"
        assert "project_id" not in data

    def test_draft_is_not_public(self, client, project):
        draft = survey_service.create_survey(project, CLIMATE)
        assert client.get(f"/api/v1/surveys/public/{draft.access_code}").status_code == 404

    def test_submit_response(self, client, survey):
        res = client.post(f"/api/v1/surveys/public/{survey.access_code}/respond",
                          json={"answers": _answers(survey)})
        assert res.status_code == 201
        response = db.session.get(SurveyResponse, res.get_json()["id"])
        assert response.status == "COMPLETED"
        assert response.respondent_id is None
        assert len(response.answers) == 2

    def test_missing_required_answer(self, client, survey):
        res = client.post(f"/api/v1/surveys/public/{survey.access_code}/respond",
                          json={"answers": _answers(survey)[:1]})
        assert res.status_code == 422
        assert res.get_json()["error"]["details"]["missing_questions"] == [
            _questions(survey)["Preferred channel"].id,
        ]

    def test_foreign_question_rejected(self, project, survey):
        other = survey_service.create_survey(project, {**CLIMATE, "status": "ACTIVE"})
        answers = _answers(survey) + [{"question_id": _questions(other)["Anything else?"].id}]
        with pytest.raises(ValidationError) as exc:
            survey_service.submit_response(survey.access_code, {"answers": answers})
        assert "answers[2]" in exc.value.details

    def test_closed_or_expired_survey_rejects(self, survey):
        survey.ends_at = utcnow() - timedelta(hours=1)
        db.session.commit()
        with pytest.raises(ValidationError):
            survey_service.submit_response(survey.access_code, {"answers": _answers(survey)})

    def test_unknown_code(self):
        with pytest.raises(NotFoundError):
            survey_service.submit_response("NOPE1234", {"answers": []})

    def test_identified_survey_keeps_respondent(self, client, project, client_user, auth_headers):
        named = survey_service.create_survey(project, {**CLIMATE, "status": "ACTIVE", "is_anonymous": False})
        res = client.post(f"/api/v1/surveys/public/{named.access_code}/respond",
                          json={"answers": _answers(named)}, headers=auth_headers(client_user))
        assert db.session.get(SurveyResponse, res.get_json()["id"]).respondent_id == client_user.id

    def test_structure_locked_after_first_response(self, survey):
        survey_service.submit_response(survey.access_code, {"answers": _answers(survey)})
        with pytest.raises(ValidationError):
            survey_service.update_survey(survey, {"questions": [{"text": "New", "type": "TEXT"}]})

    def test_responses_hide_respondent_when_anonymous(self, client, consultant, survey, auth_headers):
        survey_service.submit_response(survey.access_code, {"answers": _answers(survey)}, respondent_id=consultant.id)
        res = client.get(f"/api/v1/surveys/{survey.id}/responses", headers=auth_headers(consultant))
        assert res.get_json()[0]["respondent_id"] is None
        assert len(res.get_json()[0]["answers"]) == 2


# ═══════════════════════════════════════════════════════════════
# Invitations & statistics
# ═══════════════════════════════════════════════════════════════

class TestInvitationsAndStatistics:

    def test_send_invitations_skips_duplicates(self, client, consultant, survey, auth_headers):
        headers = auth_headers(consultant)
        res = client.post(f"/api/v1/surveys/{survey.id}/send-invitations",
                          json={"emails": ["Ana@globex.test", "ana@globex.test", "bo@globex.test"]},
                          headers=headers)
        assert res.status_code == 200
        assert res.get_json() == {"sent": 2}
        assert EmailLog.query.filter_by(template_name="survey_invitation").count() == 2

        res = client.post(f"/api/v1/surveys/{survey.id}/send-invitations",
                          json={"emails": ["bo@globex.test", "cy@globex.test"]}, headers=headers)
        assert res.get_json() == {"sent": 1}
        assert SurveyInvitation.query.filter_by(survey_id=survey.id).count() == 3

    def test_invalid_email(self, survey):
        with pytest.raises(ValidationError):
            survey_service.send_invitations(survey, ["not-an-email"])

    def test_email_failure_keeps_invitation(self, survey, monkeypatch):
        def boom(**kwargs):
            raise RuntimeError("smtp down")

        monkeypatch.setattr("app.services.survey_service.EmailService.send_from_template", boom)
        assert survey_service.send_invitations(survey, ["ana@globex.test"]) == 1
        assert SurveyInvitation.query.count() == 1

    def test_token_answers_once(self, survey):
        survey_service.send_invitations(survey, ["ana@globex.test"])
        invitation = SurveyInvitation.query.one()
        survey_service.submit_response(survey.access_code, {"answers": _answers(survey), "token": invitation.token})
        db.session.refresh(invitation)
        assert invitation.status == "RESPONDED"
        with pytest.raises(ConflictError):
            survey_service.submit_response(survey.access_code,
                                           {"answers": _answers(survey), "token": invitation.token})

    def test_statistics(self, client, consultant, survey, auth_headers):
        survey_service.send_invitations(survey, ["a@globex.test", "b@globex.test", "c@globex.test"])
        survey_service.submit_response(survey.access_code, {"answers": _answers(survey, scale=4)})
        survey_service.submit_response(survey.access_code, {"answers": _answers(survey, scale=5)})

        res = client.get(f"/api/v1/surveys/{survey.id}/statistics", headers=auth_headers(consultant))
        data = res.get_json()
        assert data["total_responses"] == 2
        assert data["total_invitations"] == 3
        assert data["response_rate"] == 66.67
        scale = next(q for q in data["questions"] if q["type"] == "SCALE")
        assert scale["answers"] == 2
        assert scale["average"] == 4.5
        assert SurveyAnswer.query.count() == 4

    def test_statistics_without_invitations(self, survey):
        assert survey_service.get_statistics(survey)["response_rate"] == 0
