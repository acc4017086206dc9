"""
Interview service: diagnostic interviews, their transcripts and AI analysis.

Rules:
  - An interview starts PENDING. Uploading a transcript stores it as a text
    file in object storage, keeps a copy on the row and moves it to
    TRANSCRIBED; a new transcript discards any earlier analysis.
  - ``analyze`` needs a transcript. The LLM is asked for a JSON object; the
    parsed result is normalised before it is stored and the interview becomes
    ANALYZED. A provider failure or an unusable answer is a 502 and leaves
    the interview untouched.
  - The interviewee's identity and the raw transcript are confidential:
    only staff callers receive them.
"""

import json
import logging
import re

from flask import current_app

from app.ai.gateway import LLMGateway
from app.core.constants import InterviewFormat, InterviewStatus, enum_values
from app.core.exceptions import NotFoundError, UpstreamError, ValidationError
from app.models import db
from app.models.interview import Interview
from app.models.project import Project
from app.services.helpers.scoped_queries import get_scoped
from app.services.project_service import record_activity
from app.services.storage_service import get_storage
from app.utils.helpers import log_and_continue, parse_datetime, utcnow

logger = logging.getLogger(__name__)

MIN_TRANSCRIPTION_LENGTH = 10
SENTIMENTS = ("positive", "neutral", "negative", "mixed")
ANALYSIS_PROMPT = (
    "You analyse transcripts of organizational-diagnostic interviews.\n"
    "Never identify the interviewee. Focus on behaviour patterns and feelings, "
    "recurring themes and pain points. Keep quotes anonymous.\n"
    "Answer with a single JSON object:\n"
    '{"sentiment": "positive|neutral|negative|mixed", "sentiment_score": 0.0-1.0, '
    '"themes": [...], "key_insights": [...], "anonymized_summary": "...", '
    '"action_items": [...]}'
)
_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def list_for_project(project: Project, *, include_confidential: bool) -> list[dict]:
    interviews = project.interviews.order_by(Interview.created_at.desc(), Interview.id.desc()).all()
    return [i.to_dict(include_confidential=include_confidential) for i in interviews]


def get_interview(tenant_id: int, interview_id: int, *, organization_id: int | None = None) -> Interview:
    interview = get_scoped(Interview, interview_id, tenant_id=tenant_id)
    if organization_id is not None and interview.project.organization_id != organization_id:
        raise NotFoundError("Interview", interview_id, tenant_id)
    return interview


def _parse_datetime(value, field: str, errors: dict):
    try:
        return parse_datetime(value)
    except ValueError:
        errors[field] = "invalid date"
        return None


def create_interview(project: Project, data: dict, *, user_id: int | None = None) -> Interview:
    errors = {}
    name = data.get("interviewee_name")
    name = name.strip() if isinstance(name, str) else ""
    if len(name) < 2:
        errors["interviewee_name"] = "at least 2 characters"
    email = (data.get("interviewee_email") or "").strip() or None
    if email and "@" not in email:
        errors["interviewee_email"] = "invalid"
    duration = data.get("duration")
    if duration is not None and (isinstance(duration, bool) or not isinstance(duration, int) or duration < 0):
        errors["duration"] = "must be a non-negative integer (minutes)"
    fmt = data.get("format")
    if fmt is not None and fmt not in enum_values(InterviewFormat):
        errors["format"] = f"must be one of {enum_values(InterviewFormat)}"
    conducted_at = _parse_datetime(data.get("interview_date"), "interview_date", errors)
    if errors:
        raise ValidationError("Invalid interview data", details=errors)

    interview = Interview(
        tenant_id=project.tenant_id,
        project_id=project.id,
        uploaded_by_id=user_id,
        title=f"Interview - {name}",
        interviewee=name,
        interviewee_role=(data.get("interviewee_role") or "").strip() or None,
        interviewee_email=email,
        conducted_at=conducted_at,
        duration=duration,
        format=fmt,
        status=InterviewStatus.PENDING.value,
    )
    db.session.add(interview)
    db.session.flush()
    record_activity(project.id, "INTERVIEW_CREATED", interview.title, user_id=user_id,
                    metadata={"interview_id": interview.id})
    db.session.commit()
    logger.info("Interview %s created for project %s", interview.id, project.id)
    return interview


def upload_transcription(interview: Interview, transcription) -> Interview:
    if not isinstance(transcription, str) or len(transcription.strip()) < MIN_TRANSCRIPTION_LENGTH:
        raise ValidationError(
            "Transcription is too short",
            details={"transcription": f"at least {MIN_TRANSCRIPTION_LENGTH} characters"},
        )
    text = transcription.strip()
    storage = get_storage()
    old_path = interview.transcription_path
    interview.transcription_path = storage.upload(
        text.encode("utf-8"), f"interview-{interview.id}.txt", "text/plain",
        f"projects/{interview.project_id}/interviews",
    )
    interview.raw_transcription = text
    interview.status = InterviewStatus.TRANSCRIBED.value
    interview.analysis_result = None
    interview.key_themes = []
    interview.sentiment_score = None
    interview.anonymized_summary = None
    interview.analyzed_at = None
    db.session.commit()
    logger.info("Interview %s transcription stored (%d chars)", interview.id, len(text))

    if old_path and old_path != interview.transcription_path:
        log_and_continue(f"Delete stored file {old_path}", storage.delete, old_path)
    return interview


# ═════════════════════════════════════════════════════════════════════════
# AI analysis
# ═════════════════════════════════════════════════════════════════════════


def _strings(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def parse_analysis(content: str) -> dict:
    """Parse and normalise the model's JSON answer.

    Raises:
        ValueError: the answer is not a JSON object.
    """
    payload = json.loads(_FENCE.sub("", (content or "").strip()))
    if not isinstance(payload, dict):
        raise ValueError("analysis is not a JSON object")

    sentiment = str(payload.get("sentiment") or "").lower()
    score = payload.get("sentiment_score", payload.get("sentimentScore"))
    try:
        score = min(max(float(score), 0.0), 1.0)
    except (TypeError, ValueError):
        score = None
    return {
        "sentiment": sentiment if sentiment in SENTIMENTS else "neutral",
        "sentiment_score": score,
        "themes": _strings(payload.get("themes")),
        "key_insights": _strings(payload.get("key_insights", payload.get("keyInsights"))),
        "anonymized_summary": str(payload.get("anonymized_summary")
                                  or payload.get("anonymizedSummary") or "").strip(),
        "action_items": _strings(payload.get("action_items", payload.get("actionItems"))),
    }


def analyze(interview: Interview) -> Interview:
    if not interview.raw_transcription:
        raise ValidationError(
            "Interview has no transcription to analyse",
            details={"transcription": "required"},
        )

    gateway = LLMGateway.from_config(current_app.config)
    try:
        result = gateway.chat(
            [
                {"role": "system", "content": ANALYSIS_PROMPT},
                {"role": "user", "content": interview.raw_transcription},
            ],
            purpose="interview_analysis",
            json_mode=True,
        )
        analysis = parse_analysis(result["content"])
    except RuntimeError as exc:
        logger.error("Interview %s analysis failed: %s", interview.id, exc)
        raise UpstreamError("AI analysis is unavailable, try again later") from exc
    except ValueError as exc:
        logger.error("Interview %s analysis returned unusable output: %s", interview.id, exc)
        raise UpstreamError("AI analysis returned an unusable answer") from exc

    interview.analysis_result = analysis
    interview.key_themes = analysis["themes"]
    interview.sentiment_score = analysis["sentiment_score"]
    interview.anonymized_summary = analysis["anonymized_summary"]
    interview.status = InterviewStatus.ANALYZED.value
    interview.analyzed_at = utcnow()
    db.session.commit()
    logger.info("Interview %s analysed: sentiment=%s themes=%d",
                interview.id, analysis["sentiment"], len(analysis["themes"]))
    return interview


def delete_interview(interview: Interview) -> None:
    path = interview.transcription_path
    interview_id = interview.id
    db.session.delete(interview)
    db.session.commit()
    logger.info("Interview %s deleted", interview_id)
    if path:
        log_and_continue(f"Delete stored file {path}", get_storage().delete, path)
