"""
Domain enumerations shared by models, services and blueprints.

All enums subclass ``str`` so members compare equal to the raw column values
stored in the database (``ChecklistStatus.PENDING == "PENDING"``).
"""

from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    CONSULTANT = "CONSULTANT"
    CLIENT = "CLIENT"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    INACTIVE = "INACTIVE"


class ProjectStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_REVIEW = "PENDING_REVIEW"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class ProjectStage(str, Enum):
    """Lifecycle stage. Declaration order is the nominal progression."""

    ONBOARDING = "ONBOARDING"
    DOCUMENT_COLLECTION = "DOCUMENT_COLLECTION"
    SURVEY_DISTRIBUTION = "SURVEY_DISTRIBUTION"
    INTERVIEW_PROCESSING = "INTERVIEW_PROCESSING"
    AI_ANALYSIS = "AI_ANALYSIS"
    REPORT_GENERATION = "REPORT_GENERATION"
    REVIEW = "REVIEW"
    DELIVERED = "DELIVERED"


class ChecklistStatus(str, Enum):
    PENDING = "PENDING"
    UPLOADED = "UPLOADED"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"


# Statuses that count toward project progress
COMPLETED_CHECKLIST_STATUSES = frozenset({ChecklistStatus.UPLOADED, ChecklistStatus.VALIDATED})


class DocumentType(str, Enum):
    MISSION_VISION_VALUES = "MISSION_VISION_VALUES"
    CULTURE_FACTORS = "CULTURE_FACTORS"
    ORGANIZATIONAL_CHART = "ORGANIZATIONAL_CHART"
    GOALS_OBJECTIVES = "GOALS_OBJECTIVES"
    PRODUCTS_SERVICES = "PRODUCTS_SERVICES"
    TEAM_LIST = "TEAM_LIST"
    POLICY_MANUAL = "POLICY_MANUAL"
    FINANCIAL_DATA = "FINANCIAL_DATA"
    OTHER = "OTHER"


class DocumentStatus(str, Enum):
    UPLOADED = "UPLOADED"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"


class ReportStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    READ = "READ"


class SurveyType(str, Enum):
    PARTNERS = "PARTNERS"
    LEADERSHIP = "LEADERSHIP"
    CLIMATE = "CLIMATE"
    CUSTOM = "CUSTOM"


class SurveyStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class QuestionType(str, Enum):
    TEXT = "TEXT"
    TEXTAREA = "TEXTAREA"
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    SCALE = "SCALE"
    NPS = "NPS"
    RATING = "RATING"
    DATE = "DATE"


# Question types whose answers are averaged in survey statistics
NUMERIC_QUESTION_TYPES = frozenset({QuestionType.SCALE, QuestionType.NPS, QuestionType.RATING})


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    RESPONDED = "RESPONDED"


class InterviewStatus(str, Enum):
    PENDING = "PENDING"
    TRANSCRIBED = "TRANSCRIBED"
    ANALYZED = "ANALYZED"


class InterviewFormat(str, Enum):
    IN_PERSON = "IN_PERSON"
    VIDEO_CALL = "VIDEO_CALL"
    PHONE = "PHONE"


def enum_values(enum_cls) -> list[str]:
    """Return the raw values of an enum, in declaration order."""
    return [member.value for member in enum_cls]
