"""
Survey models.

Models:
    - Survey: questionnaire attached to a project, reachable publicly by access code
    - SurveySection: ordered group of questions (one per diagnostic indicator)
    - SurveyQuestion: one question; ``options`` holds the choices for choice types
    - SurveyInvitation: emailed invitation with a single-use token
    - SurveyResponse / SurveyAnswer: one submitted questionnaire and its answers
"""

from datetime import datetime, timezone

from app.core.constants import InvitationStatus, SurveyStatus
from app.models import db


def _iso(value):
    return value.isoformat() if value else None


class Survey(db.Model):
    __tablename__ = "surveys"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    type = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    instructions = db.Column(db.Text)
    access_code = db.Column(db.String(16), nullable=False, unique=True)
    is_anonymous = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(20), nullable=False, default=SurveyStatus.DRAFT.value)
    starts_at = db.Column(db.DateTime(timezone=True))
    ends_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="surveys")
    sections = db.relationship(
        "SurveySection", back_populates="survey", order_by="SurveySection.order",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    invitations = db.relationship(
        "SurveyInvitation", back_populates="survey", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    responses = db.relationship(
        "SurveyResponse", back_populates="survey", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def questions(self) -> list:
        return [q for s in self.sections for q in s.questions]

    def to_dict(self, *, include_sections: bool = True) -> dict:
        data = {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "instructions": self.instructions,
            "access_code": self.access_code,
            "is_anonymous": self.is_anonymous,
            "status": self.status,
            "starts_at": _iso(self.starts_at),
            "ends_at": _iso(self.ends_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_sections:
            data["sections"] = [s.to_dict() for s in self.sections]
        return data

    def __repr__(self) -> str:
        return f"<Survey {self.id}: {self.access_code} {self.status}>"


class SurveySection(db.Model):
    __tablename__ = "survey_sections"

    id = db.Column(db.Integer, primary_key=True)
    survey_id = db.Column(
        db.Integer, db.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    indicator = db.Column(db.String(100))
    order = db.Column(db.Integer, nullable=False, default=0)

    survey = db.relationship("Survey", back_populates="sections")
    questions = db.relationship(
        "SurveyQuestion", back_populates="section", order_by="SurveyQuestion.order",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "indicator": self.indicator,
            "order": self.order,
            "questions": [q.to_dict() for q in self.questions],
        }


class SurveyQuestion(db.Model):
    __tablename__ = "survey_questions"

    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(
        db.Integer, db.ForeignKey("survey_sections.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    order = db.Column(db.Integer, nullable=False, default=0)
    options = db.Column(db.JSON, nullable=False, default=list)

    section = db.relationship("SurveySection", back_populates="questions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type,
            "is_required": self.is_required,
            "order": self.order,
            "options": self.options or [],
        }


class SurveyInvitation(db.Model):
    __tablename__ = "survey_invitations"

    id = db.Column(db.Integer, primary_key=True)
    survey_id = db.Column(
        db.Integer, db.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    email = db.Column(db.String(200), nullable=False)
    token = db.Column(db.String(64), nullable=False, unique=True)
    status = db.Column(db.String(20), nullable=False, default=InvitationStatus.PENDING.value)
    responded_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    survey = db.relationship("Survey", back_populates="invitations")

    __table_args__ = (
        db.UniqueConstraint("survey_id", "email", name="uq_survey_invitations_survey_email"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "survey_id": self.survey_id,
            "email": self.email,
            "status": self.status,
            "responded_at": _iso(self.responded_at),
            "created_at": _iso(self.created_at),
        }


class SurveyResponse(db.Model):
    __tablename__ = "survey_responses"

    id = db.Column(db.Integer, primary_key=True)
    survey_id = db.Column(
        db.Integer, db.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    invitation_id = db.Column(
        db.Integer, db.ForeignKey("survey_invitations.id", ondelete="SET NULL"), nullable=True,
    )
    respondent_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="COMPLETED")
    submitted_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    survey = db.relationship("Survey", back_populates="responses")
    answers = db.relationship(
        "SurveyAnswer", back_populates="response",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, *, anonymous: bool = False) -> dict:
        return {
            "id": self.id,
            "survey_id": self.survey_id,
            "respondent_id": None if anonymous else self.respondent_id,
            "status": self.status,
            "submitted_at": _iso(self.submitted_at),
            "answers": [a.to_dict() for a in self.answers],
        }


class SurveyAnswer(db.Model):
    __tablename__ = "survey_answers"

    id = db.Column(db.Integer, primary_key=True)
    response_id = db.Column(
        db.Integer, db.ForeignKey("survey_responses.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    question_id = db.Column(
        db.Integer, db.ForeignKey("survey_questions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    value = db.Column(db.JSON)
    text_value = db.Column(db.Text)
    numeric_value = db.Column(db.Float)

    response = db.relationship("SurveyResponse", back_populates="answers")

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "value": self.value,
            "text_value": self.text_value,
            "numeric_value": self.numeric_value,
        }
