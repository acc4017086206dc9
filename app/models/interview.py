"""Interview records: transcription and AI analysis of diagnostic interviews."""

from datetime import datetime, timezone

from app.core.constants import InterviewStatus
from app.models import db

# Withheld from callers without confidential access (the client side)
CONFIDENTIAL_FIELDS = (
    "interviewee", "interviewee_role", "interviewee_email",
    "raw_transcription", "transcription_path",
)


class Interview(db.Model):
    __tablename__ = "interviews"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = db.Column(db.String(300), nullable=False)
    interviewee = db.Column(db.String(200), nullable=False)
    interviewee_role = db.Column(db.String(200))
    interviewee_email = db.Column(db.String(200))
    conducted_at = db.Column(db.DateTime(timezone=True))
    duration = db.Column(db.Integer)  # minutes
    format = db.Column(db.String(20))
    status = db.Column(db.String(20), nullable=False, default=InterviewStatus.PENDING.value)

    transcription_path = db.Column(db.String(500))
    raw_transcription = db.Column(db.Text)
    analysis_result = db.Column(db.JSON)
    key_themes = db.Column(db.JSON, nullable=False, default=list)
    sentiment_score = db.Column(db.Float)
    anonymized_summary = db.Column(db.Text)
    analyzed_at = db.Column(db.DateTime(timezone=True))

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

    project = db.relationship("Project", back_populates="interviews")

    def to_dict(self, *, include_confidential: bool = True) -> dict:
        data = {
            "id": self.id,
            "project_id": self.project_id,
            "uploaded_by_id": self.uploaded_by_id,
            "title": self.title,
            "interviewee": self.interviewee,
            "interviewee_role": self.interviewee_role,
            "interviewee_email": self.interviewee_email,
            "conducted_at": self.conducted_at.isoformat() if self.conducted_at else None,
            "duration": self.duration,
            "format": self.format,
            "status": self.status,
            "transcription_path": self.transcription_path,
            "raw_transcription": self.raw_transcription,
            "analysis_result": self.analysis_result,
            "key_themes": self.key_themes or [],
            "sentiment_score": self.sentiment_score,
            "anonymized_summary": self.anonymized_summary,
            "analyzed_at": self.analyzed_at.isoformat() if self.analyzed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if not include_confidential:
            for field in CONFIDENTIAL_FIELDS:
                data.pop(field)
        return data

    def __repr__(self) -> str:
        return f"<Interview {self.id}: {self.status}>"
