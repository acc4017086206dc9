"""
Checklist progress engine.

Derives checklist item status, project progress and the automatic stage move
from three completion signals:

  1. Onboarding step flags (``project.settings["onboarding"]``): every step
     with a non-empty value marks the document types it maps to.
  2. Organization profile: any of mission / vision / values filled in marks
     MISSION_VISION_VALUES.
  3. Attached documents: an item with at least one document is marked.

Rules:
  - A signal only ever moves an item PENDING -> UPLOADED. VALIDATED and
    REJECTED are never touched here.
  - progress = round(100 * completed / total), half-up, where completed
    counts UPLOADED and VALIDATED items. Skipped when the checklist is empty.
  - progress is written only when it changes. When the new value is 100 and
    the stage is ONBOARDING, the same write moves the stage to
    DOCUMENT_COLLECTION. No other stage edge is automatic.
  - Running the engine twice on unchanged inputs writes nothing the second time.

The fold is pure (``fold_checklist``, ``compute_progress``, ``advance_stage``).
``ProgressEngine`` wires it to persistence through the ``ChecklistStore`` and
``OrganizationReader`` interfaces; the SQLAlchemy implementations live in
``app.services.checklist_store``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

from app.core.checklist_template import ONBOARDING_STEP_DOCUMENT_TYPES
from app.core.constants import (
    COMPLETED_CHECKLIST_STATUSES,
    ChecklistStatus,
    DocumentType,
    ProjectStage,
)
from app.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

SOURCE_DOCUMENT = "document"
SOURCE_ORGANIZATION = "organization_profile"
SOURCE_ONBOARDING_PREFIX = "onboarding:"


# ═══════════════════════════════════════════════════════════════════════════
#  Value objects
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ChecklistItemState:
    """Snapshot of one checklist item as seen by the fold."""

    id: int
    document_type: str
    status: ChecklistStatus
    document_count: int = 0


@dataclass(frozen=True)
class OrganizationProfile:
    mission: str | None = None
    vision: str | None = None
    values: str | None = None

    @property
    def has_identity(self) -> bool:
        return any((v or "").strip() for v in (self.mission, self.vision, self.values))


@dataclass(frozen=True)
class ProjectState:
    project_id: int
    stage: ProjectStage
    progress: int
    organization_id: int | None
    onboarding: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusTransition:
    item_id: int
    document_type: str
    from_status: ChecklistStatus
    to_status: ChecklistStatus
    source: str


@dataclass
class ReconcileResult:
    project_id: int
    transitions: list[StatusTransition]
    progress_before: int
    progress_after: int
    stage_before: ProjectStage
    stage_after: ProjectStage

    @property
    def progress_changed(self) -> bool:
        return self.progress_before != self.progress_after

    @property
    def stage_advanced(self) -> bool:
        return self.stage_before != self.stage_after

    @property
    def changed(self) -> bool:
        return bool(self.transitions) or self.progress_changed or self.stage_advanced

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "updated_items": [t.document_type for t in self.transitions],
            "progress": self.progress_after,
            "stage": self.stage_after.value,
            "stage_advanced": self.stage_advanced,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  Pure fold
# ═══════════════════════════════════════════════════════════════════════════


def _step_is_set(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def satisfied_document_types(
    onboarding: Mapping[str, object] | None,
    profile: OrganizationProfile | None,
) -> dict[str, str]:
    """Return ``{document_type: source}`` for every type a non-document signal satisfies.

    When several signals cover the same type, the first one wins (onboarding
    steps in table order, then the organization profile).
    """
    satisfied: dict[str, str] = {}
    onboarding = onboarding or {}
    for step_id, doc_types in ONBOARDING_STEP_DOCUMENT_TYPES.items():
        if not _step_is_set(onboarding.get(step_id)):
            continue
        for doc_type in doc_types:
            satisfied.setdefault(doc_type.value, SOURCE_ONBOARDING_PREFIX + step_id)
    if profile is not None and profile.has_identity:
        satisfied.setdefault(DocumentType.MISSION_VISION_VALUES.value, SOURCE_ORGANIZATION)
    return satisfied


def fold_checklist(
    items: Iterable[ChecklistItemState],
    onboarding: Mapping[str, object] | None,
    profile: OrganizationProfile | None,
) -> list[StatusTransition]:
    """Compute the PENDING -> UPLOADED transitions implied by the signals."""
    by_signal = satisfied_document_types(onboarding, profile)
    transitions = []
    for item in items:
        if item.status != ChecklistStatus.PENDING:
            continue
        source = by_signal.get(item.document_type)
        if source is None and item.document_count > 0:
            source = SOURCE_DOCUMENT
        if source is None:
            continue
        transitions.append(StatusTransition(
            item_id=item.id,
            document_type=item.document_type,
            from_status=ChecklistStatus.PENDING,
            to_status=ChecklistStatus.UPLOADED,
            source=source,
        ))
    return transitions


def apply_transitions(
    items: Iterable[ChecklistItemState],
    transitions: Iterable[StatusTransition],
) -> list[ChecklistItemState]:
    targets = {t.item_id: t.to_status for t in transitions}
    return [
        replace(item, status=targets[item.id]) if item.id in targets else item
        for item in items
    ]


def compute_progress(statuses: Iterable[ChecklistStatus | str]) -> int | None:
    """Percentage of completed items, rounded half-up. None for an empty checklist."""
    statuses = list(statuses)
    total = len(statuses)
    if total == 0:
        return None
    completed = sum(1 for s in statuses if ChecklistStatus(s) in COMPLETED_CHECKLIST_STATUSES)
    return (200 * completed + total) // (2 * total)


def advance_stage(stage: ProjectStage | str, progress: int) -> ProjectStage:
    """Apply the single automatic stage edge (ONBOARDING -> DOCUMENT_COLLECTION at 100%)."""
    stage = ProjectStage(stage)
    if progress >= 100 and stage == ProjectStage.ONBOARDING:
        return ProjectStage.DOCUMENT_COLLECTION
    return stage


# ═══════════════════════════════════════════════════════════════════════════
#  Persistence interfaces
# ═══════════════════════════════════════════════════════════════════════════


class ChecklistStore(ABC):
    """Read/write access to a project's checklist and progress fields."""

    @abstractmethod
    def get_project_state(self, project_id: int) -> ProjectState | None:
        ...

    @abstractmethod
    def list_items(self, project_id: int) -> list[ChecklistItemState]:
        ...

    @abstractmethod
    def apply_transitions(
        self, project_id: int, transitions: list[StatusTransition],
    ) -> list[StatusTransition]:
        """Write the transitions whose row still holds ``from_status``; return those written."""
        ...

    @abstractmethod
    def save_progress(self, project_id: int, progress: int, stage: ProjectStage) -> None:
        ...


class OrganizationReader(ABC):
    @abstractmethod
    def get_profile(self, organization_id: int) -> OrganizationProfile | None:
        ...


# ═══════════════════════════════════════════════════════════════════════════
#  Engine
# ═══════════════════════════════════════════════════════════════════════════


class ProgressEngine:
    """Reconciles one project's checklist, progress and stage.

    The engine does not commit and does not swallow errors; callers own the
    transaction and decide whether a failure is fatal.
    """

    def __init__(self, store: ChecklistStore, organizations: OrganizationReader):
        self._store = store
        self._organizations = organizations

    def reconcile(
        self,
        project_id: int,
        onboarding_settings: Mapping[str, object] | None = None,
        organization_id: int | None = None,
    ) -> ReconcileResult:
        state = self._store.get_project_state(project_id)
        if state is None:
            raise NotFoundError("Project", project_id)

        onboarding = state.onboarding if onboarding_settings is None else onboarding_settings
        org_id = state.organization_id if organization_id is None else organization_id
        profile = self._organizations.get_profile(org_id) if org_id else None

        items = self._store.list_items(project_id)
        planned = fold_checklist(items, onboarding, profile)
        transitions = self._store.apply_transitions(project_id, planned) if planned else []
        if transitions:
            logger.info(
                "Checklist reconcile: project=%s marked %s",
                project_id, ", ".join(t.document_type for t in transitions),
            )
        if len(transitions) != len(planned):
            logger.info(
                "Checklist reconcile: project=%s skipped %d item(s) changed concurrently",
                project_id, len(planned) - len(transitions),
            )
            items = self._store.list_items(project_id)

        stage_before = ProjectStage(state.stage)
        # Only transitions the store accepted count towards progress
        progress = compute_progress(i.status for i in apply_transitions(items, transitions))
        progress_after, stage_after = state.progress, stage_before
        if progress is not None and progress != state.progress:
            progress_after = progress
            stage_after = advance_stage(stage_before, progress)
            self._store.save_progress(project_id, progress_after, stage_after)
            logger.info(
                "Project progress: project=%s %s%% -> %s%% stage=%s",
                project_id, state.progress, progress_after, stage_after.value,
            )

        return ReconcileResult(
            project_id=project_id,
            transitions=transitions,
            progress_before=state.progress,
            progress_after=progress_after,
            stage_before=stage_before,
            stage_after=stage_after,
        )
