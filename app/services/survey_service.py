"""
Survey service: questionnaires, public responses and invitations.

Rules:
  - A survey belongs to one project and gets an 8-character access code; the
    public endpoints find it by that code without authentication.
  - Questions live in sections. ``questions`` given at the top level of the
    payload go into one untitled section.
  - The question structure can be replaced only while the survey has no
    responses.
  - Responses are accepted only while the survey is ACTIVE and inside its
    ``starts_at`` / ``ends_at`` window. Every answer must point at a question
    of the survey and every required question must be answered. A response
    carrying an invitation token marks that invitation RESPONDED; a token
    answers once.
  - Anonymous surveys never expose who answered.
  - ``send_invitations`` skips addresses already invited and emails the rest;
    a failing email does not undo the invitation.
"""

import logging
import secrets
import uuid

from flask import current_app
from sqlalchemy import func

from app.core.constants import (
    NUMERIC_QUESTION_TYPES,
    InvitationStatus,
    QuestionType,
    SurveyStatus,
    SurveyType,
    enum_values,
)
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.project import Project
from app.models.survey import (
    Survey,
    SurveyAnswer,
    SurveyInvitation,
    SurveyQuestion,
    SurveyResponse,
    SurveySection,
)
from app.services.email_service import EmailService
from app.services.helpers.scoped_queries import get_scoped
from app.utils.helpers import as_utc, log_and_continue, parse_datetime, utcnow

logger = logging.getLogger(__name__)

CHOICE_QUESTION_TYPES = {QuestionType.SINGLE_CHOICE.value, QuestionType.MULTIPLE_CHOICE.value}
MAX_INVITATIONS_PER_CALL = 500


def generate_access_code() -> str:
    return uuid.uuid4().hex[:8].upper()


# ═════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════


def list_for_project(project: Project) -> list[dict]:
    surveys = project.surveys.order_by(Survey.created_at.desc(), Survey.id.desc()).all()
    out = []
    for survey in surveys:
        data = survey.to_dict(include_sections=False)
        data["response_count"] = survey.responses.count()
        data["invitation_count"] = survey.invitations.count()
        out.append(data)
    return out


def get_survey(tenant_id: int, survey_id: int, *, organization_id: int | None = None) -> Survey:
    survey = get_scoped(Survey, survey_id, tenant_id=tenant_id)
    if organization_id is not None and survey.project.organization_id != organization_id:
        raise NotFoundError("Survey", survey_id, tenant_id)
    return survey


def get_by_access_code(code: str) -> Survey:
    """Published survey for the public form. DRAFT surveys are not reachable."""
    survey = Survey.query.filter_by(access_code=(code or "").strip().upper()).first()
    if survey is None or survey.status == SurveyStatus.DRAFT.value:
        raise NotFoundError("Survey", code)
    return survey


# ═════════════════════════════════════════════════════════════════════════
# Create / update
# ═════════════════════════════════════════════════════════════════════════


def _parse_datetime(value, field: str, errors: dict):
    try:
        return parse_datetime(value)
    except ValueError:
        errors[field] = "invalid date"
        return None


def _build_question(raw, position: int, errors: dict, key: str) -> SurveyQuestion | None:
    if not isinstance(raw, dict):
        errors[key] = "must be an object"
        return None
    text = raw.get("text")
    text = text.strip() if isinstance(text, str) else ""
    qtype = raw.get("type")
    options = raw.get("options") or []
    if not text:
        errors[f"{key}.text"] = "required"
    if qtype not in enum_values(QuestionType):
        errors[f"{key}.type"] = f"must be one of {enum_values(QuestionType)}"
    if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
        errors[f"{key}.options"] = "must be a list of strings"
        options = []
    elif qtype in CHOICE_QUESTION_TYPES and not options:
        errors[f"{key}.options"] = "required for choice questions"
    return SurveyQuestion(
        text=text,
        type=qtype,
        is_required=bool(raw.get("is_required", True)),
        order=raw.get("order") if isinstance(raw.get("order"), int) else position,
        options=options,
    )


def _build_sections(data: dict, errors: dict) -> list[SurveySection]:
    sections = []
    raw_sections = data.get("sections") or []
    if not isinstance(raw_sections, list):
        errors["sections"] = "must be a list"
        raw_sections = []
    for s_pos, raw in enumerate(raw_sections, start=1):
        key = f"sections[{s_pos - 1}]"
        title = raw.get("title") if isinstance(raw, dict) else None
        if not isinstance(title, str) or not title.strip():
            errors[f"{key}.title"] = "required"
            continue
        section = SurveySection(
            title=title.strip(),
            description=raw.get("description"),
            indicator=raw.get("indicator"),
            order=raw.get("order") if isinstance(raw.get("order"), int) else s_pos,
        )
        for q_pos, q in enumerate(raw.get("questions") or [], start=1):
            question = _build_question(q, q_pos, errors, f"{key}.questions[{q_pos - 1}]")
            if question is not None:
                section.questions.append(question)
        sections.append(section)

    loose = data.get("questions") or []
    if not isinstance(loose, list):
        errors["questions"] = "must be a list"
    elif loose:
        section = SurveySection(title="Questions", order=len(sections) + 1)
        for q_pos, q in enumerate(loose, start=1):
            question = _build_question(q, q_pos, errors, f"questions[{q_pos - 1}]")
            if question is not None:
                section.questions.append(question)
        sections.append(section)
    return sections


def _validate_fields(data: dict, *, creating: bool) -> tuple[dict, dict]:
    errors = {}
    fields = {}
    if creating or "name" in data:
        name = data.get("name")
        name = name.strip() if isinstance(name, str) else ""
        if len(name) < 2:
            errors["name"] = "at least 2 characters"
        fields["name"] = name
    if creating or "type" in data:
        if data.get("type") not in enum_values(SurveyType):
            errors["type"] = f"must be one of {enum_values(SurveyType)}"
        fields["type"] = data.get("type")
    if "status" in data:
        if data["status"] not in enum_values(SurveyStatus):
            errors["status"] = f"must be one of {enum_values(SurveyStatus)}"
        fields["status"] = data["status"]
    for field in ("description", "instructions"):
        if field in data:
            value = data[field]
            fields[field] = (value.strip() or None) if isinstance(value, str) else None
    if "is_anonymous" in data:
        fields["is_anonymous"] = bool(data["is_anonymous"])
    for field in ("starts_at", "ends_at"):
        if field in data:
            fields[field] = _parse_datetime(data[field], field, errors)
    return fields, errors


def create_survey(project: Project, data: dict, *, user_id: int | None = None) -> Survey:
    fields, errors = _validate_fields(data, creating=True)
    sections = _build_sections(data, errors)
    if fields.get("starts_at") and fields.get("ends_at") and fields["ends_at"] <= fields["starts_at"]:
        errors["ends_at"] = "must be after starts_at"
    if errors:
        raise ValidationError("Invalid survey data", details=errors)

    survey = Survey(
        tenant_id=project.tenant_id,
        project_id=project.id,
        created_by_id=user_id,
        access_code=generate_access_code(),
        is_anonymous=fields.pop("is_anonymous", True),
        status=fields.pop("status", SurveyStatus.DRAFT.value),
        **fields,
    )
    survey.sections = sections
    db.session.add(survey)
    db.session.commit()
    logger.info("Survey %s created for project %s (%d questions, code=%s)",
                survey.id, project.id, len(survey.questions), survey.access_code)
    return survey


def update_survey(survey: Survey, data: dict) -> Survey:
    fields, errors = _validate_fields(data, creating=False)
    sections = None
    if "sections" in data or "questions" in data:
        if survey.responses.count():
            raise ValidationError("Questions cannot change once the survey has responses",
                                  details={"sections": "locked"})
        sections = _build_sections(data, errors)
    starts_at = fields.get("starts_at", survey.starts_at)
    ends_at = fields.get("ends_at", survey.ends_at)
    if starts_at and ends_at and as_utc(ends_at) <= as_utc(starts_at):
        errors["ends_at"] = "must be after starts_at"
    if errors:
        raise ValidationError("Invalid survey data", details=errors)

    for field, value in fields.items():
        setattr(survey, field, value)
    if sections is not None:
        survey.sections = sections
    db.session.commit()
    logger.info("Survey %s updated: %s", survey.id, sorted(fields) + (["sections"] if sections else []))
    return survey


def delete_survey(survey: Survey) -> None:
    survey_id = survey.id
    db.session.delete(survey)
    db.session.commit()
    logger.info("Survey %s deleted", survey_id)


# ═════════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════════


def _accepting_responses(survey: Survey) -> bool:
    if survey.status != SurveyStatus.ACTIVE.value:
        return False
    now = utcnow()
    if survey.starts_at and as_utc(survey.starts_at) > now:
        return False
    if survey.ends_at and as_utc(survey.ends_at) <= now:
        return False
    return True


def _build_answers(survey: Survey, raw_answers) -> list[SurveyAnswer]:
    if not isinstance(raw_answers, list):
        raise ValidationError("answers must be a list", details={"answers": "invalid"})

    questions = {q.id: q for q in survey.questions}
    errors = {}
    answers = []
    answered = set()
    for pos, raw in enumerate(raw_answers):
        key = f"answers[{pos}]"
        question = questions.get(raw.get("question_id")) if isinstance(raw, dict) else None
        if question is None:
            errors[key] = "unknown question"
            continue
        numeric = raw.get("numeric_value")
        if numeric is not None and (isinstance(numeric, bool) or not isinstance(numeric, (int, float))):
            errors[f"{key}.numeric_value"] = "must be a number"
            continue
        text_value = raw.get("text_value")
        answers.append(SurveyAnswer(
            question_id=question.id,
            value=raw.get("value"),
            text_value=text_value if isinstance(text_value, str) else None,
            numeric_value=numeric,
        ))
        answered.add(question.id)

    missing = [q.id for q in questions.values() if q.is_required and q.id not in answered]
    if missing:
        errors["missing_questions"] = missing
    if errors:
        raise ValidationError("Invalid survey response", details=errors)
    return answers


def submit_response(code: str, data: dict, *, respondent_id: int | None = None) -> SurveyResponse:
    survey = get_by_access_code(code)
    if not _accepting_responses(survey):
        raise ValidationError("This survey is not accepting responses", details={"status": survey.status})

    invitation = None
    token = data.get("token")
    if token:
        invitation = SurveyInvitation.query.filter_by(survey_id=survey.id, token=token).first()
        if invitation is None:
            raise ValidationError("Unknown invitation token", details={"token": "invalid"})
        if invitation.status == InvitationStatus.RESPONDED.value:
            raise ConflictError("SurveyResponse", "token")

    response = SurveyResponse(
        survey_id=survey.id,
        invitation_id=invitation.id if invitation else None,
        respondent_id=None if survey.is_anonymous else respondent_id,
        status="COMPLETED",
        submitted_at=utcnow(),
    )
    response.answers = _build_answers(survey, data.get("answers"))
    db.session.add(response)
    if invitation is not None:
        invitation.status = InvitationStatus.RESPONDED.value
        invitation.responded_at = response.submitted_at
    db.session.commit()
    logger.info("Survey %s received response %s (%d answers)",
                survey.id, response.id, len(response.answers))
    return response


def list_responses(survey: Survey) -> list[dict]:
    responses = survey.responses.order_by(SurveyResponse.submitted_at.desc(), SurveyResponse.id.desc())
    return [r.to_dict(anonymous=survey.is_anonymous) for r in responses]


def get_statistics(survey: Survey) -> dict:
    """Response rate plus per-question answer counts and numeric averages."""
    total_responses = survey.responses.count()
    total_invitations = survey.invitations.count()
    rate = round(total_responses / total_invitations * 100, 2) if total_invitations else 0

    rows = (
        db.session.query(
            SurveyAnswer.question_id,
            func.count(SurveyAnswer.id),
            func.avg(SurveyAnswer.numeric_value),
        )
        .join(SurveyResponse, SurveyResponse.id == SurveyAnswer.response_id)
        .filter(SurveyResponse.survey_id == survey.id)
        .group_by(SurveyAnswer.question_id)
        .all()
    )
    per_question = {qid: (count, avg) for qid, count, avg in rows}
    questions = []
    for q in survey.questions:
        count, avg = per_question.get(q.id, (0, None))
        entry = {"question_id": q.id, "text": q.text, "type": q.type, "answers": count}
        if q.type in {t.value for t in NUMERIC_QUESTION_TYPES}:
            entry["average"] = round(float(avg), 2) if avg is not None else None
        questions.append(entry)

    return {
        "total_responses": total_responses,
        "total_invitations": total_invitations,
        "response_rate": rate,
        "questions": questions,
    }


# ═════════════════════════════════════════════════════════════════════════
# Invitations
# ═════════════════════════════════════════════════════════════════════════


def _survey_link(survey: Survey, token: str) -> str:
    return f"{current_app.config['FRONTEND_URL']}/surveys/{survey.access_code}?token={token}"


def _email_invitation(survey: Survey, invitation: SurveyInvitation) -> None:
    org = survey.project.organization
    EmailService.send_from_template(
        to_email=invitation.email,
        template_name="survey_invitation",
        context={
            "survey_name": survey.name,
            "organization_name": org.name if org else "",
            "anonymity": ("Your answers are anonymous." if survey.is_anonymous
                          else "Your answers are linked to your invitation."),
            "link": _survey_link(survey, invitation.token),
        },
        category="survey",
        project_id=survey.project_id,
    )
    db.session.commit()


def send_invitations(survey: Survey, emails) -> int:
    """Invite every new address in ``emails``; return how many were created."""
    if not isinstance(emails, list) or not emails:
        raise ValidationError("emails must be a non-empty list", details={"emails": "required"})
    if len(emails) > MAX_INVITATIONS_PER_CALL:
        raise ValidationError("Too many addresses", details={"emails": f"max {MAX_INVITATIONS_PER_CALL}"})
    if survey.status == SurveyStatus.CLOSED.value:
        raise ValidationError("Survey is closed", details={"status": survey.status})

    cleaned = []
    invalid = []
    for raw in emails:
        email = raw.strip().lower() if isinstance(raw, str) else ""
        if "@" not in email:
            invalid.append(raw)
        elif email not in cleaned:
            cleaned.append(email)
    if invalid:
        raise ValidationError("Invalid email address(es)", details={"emails": invalid})

    existing = {e for (e,) in db.session.query(SurveyInvitation.email).filter_by(survey_id=survey.id)}
    created = []
    for email in cleaned:
        if email in existing:
            continue
        invitation = SurveyInvitation(survey_id=survey.id, email=email, token=secrets.token_urlsafe(24))
        db.session.add(invitation)
        created.append(invitation)
    db.session.commit()
    logger.info("Survey %s: %d invitation(s) created, %d skipped",
                survey.id, len(created), len(cleaned) - len(created))

    for invitation in created:
        log_and_continue(f"Survey invitation email to {invitation.email}",
                         _email_invitation, survey, invitation, rollback=True)
    return len(created)
