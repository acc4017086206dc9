"""
Default document checklist and onboarding-step mapping.

Both tables live here so that seeding, reconciliation and the onboarding
validation in the project service read the same data.
"""

from dataclasses import dataclass

from app.core.constants import DocumentType


@dataclass(frozen=True)
class ChecklistTemplateEntry:
    document_type: DocumentType
    instructions: str
    order: int
    is_required: bool


DEFAULT_CHECKLIST: tuple[ChecklistTemplateEntry, ...] = (
    ChecklistTemplateEntry(
        DocumentType.MISSION_VISION_VALUES,
        "Company mission, vision and values statement.",
        1, True,
    ),
    ChecklistTemplateEntry(
        DocumentType.CULTURE_FACTORS,
        "Cultural factors and organizational context (history, rituals, leadership style).",
        2, True,
    ),
    ChecklistTemplateEntry(
        DocumentType.ORGANIZATIONAL_CHART,
        "Up-to-date organizational chart.",
        3, True,
    ),
    ChecklistTemplateEntry(
        DocumentType.GOALS_OBJECTIVES,
        "Current strategic goals and objectives.",
        4, False,
    ),
    ChecklistTemplateEntry(
        DocumentType.PRODUCTS_SERVICES,
        "Portfolio of products and services.",
        5, False,
    ),
    ChecklistTemplateEntry(
        DocumentType.TEAM_LIST,
        "Staff list with department and role for each employee.",
        6, True,
    ),
    ChecklistTemplateEntry(
        DocumentType.POLICY_MANUAL,
        "Internal policy manual, if one exists.",
        7, False,
    ),
    ChecklistTemplateEntry(
        DocumentType.FINANCIAL_DATA,
        "Relevant financial data, if applicable.",
        8, False,
    ),
)


# Onboarding step id -> checklist document types it satisfies
ONBOARDING_STEP_DOCUMENT_TYPES: dict[str, tuple[DocumentType, ...]] = {
    "mission-vision": (DocumentType.MISSION_VISION_VALUES,),
    "culture": (DocumentType.CULTURE_FACTORS, DocumentType.POLICY_MANUAL),
    "org-chart": (DocumentType.ORGANIZATIONAL_CHART,),
    "financial": (DocumentType.FINANCIAL_DATA,),
    "goals": (DocumentType.GOALS_OBJECTIVES,),
    "products": (DocumentType.PRODUCTS_SERVICES,),
    "team": (DocumentType.TEAM_LIST,),
}

ONBOARDING_STEP_IDS = frozenset(ONBOARDING_STEP_DOCUMENT_TYPES)

# Well-known onboarding step values; any other non-empty string also counts
STEP_COMPLETED_VIA_UPLOAD = "COMPLETED_VIA_UPLOAD"
STEP_SKIPPED = "SKIPPED"
