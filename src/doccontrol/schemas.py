"""Domain models for the document control workflow.

Every structure that crosses a component boundary is defined here and
validated on construction.  Fields are snake_case in Python and
camelCase on the wire (``model_dump(by_alias=True)``).

Immutable models (``frozen=True``) are never mutated in place: the
review state machine and the session controller derive new values with
``model_copy(update=...)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from doccontrol.constants import (
    ChangeStatus,
    ConfidenceWeight,
    ControlStep,
    DiffType,
    MatchReason,
)
from doccontrol.ingestion.schemas import UploadedFile

Score = Annotated[float, Field(ge=0.0, le=1.0)]


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


def _require_text(value: str, field_name: str) -> str:
    if not value.strip():
        raise ValueError(f"{field_name} must not be empty")
    return value


# ── Content analysis ─────────────────────────────────────


class PrimarySubject(_Model):
    domain: str
    specific_area: str
    scope: str


class ExplicitFact(_Model):
    """A fact stated in the uploaded document, with its verbatim quote."""

    statement: str
    confidence: Score
    source_location: str = ""
    verbatim_quote: str

    @field_validator("verbatim_quote")
    @classmethod
    def _quote_required(cls, v: str) -> str:
        return _require_text(v, "verbatim_quote")


class ContentAnalysis(_Model):
    primary_subject: PrimarySubject
    explicit_facts: tuple[ExplicitFact, ...] = ()
    out_of_scope: tuple[str, ...] = ()
    stated_boundaries: tuple[str, ...] = ()


# ── Confidence & evidence ────────────────────────────────


class ConfidenceBreakdown(_Model):
    """Four normalized sub-scores; ``overall`` is always derived."""

    subject_match: Score
    factual_alignment: Score
    scope_containment: Score
    change_minimality: Score

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall(self) -> float:
        return (
            ConfidenceWeight.SUBJECT_EXACT_MATCH * self.subject_match
            + ConfidenceWeight.EVIDENCE_DIRECTNESS * self.factual_alignment
            + ConfidenceWeight.SCOPE_CONTAINMENT * self.scope_containment
            + ConfidenceWeight.CHANGE_MINIMALITY * self.change_minimality
        )


class ChangeEvidence(_Model):
    source_quote: str
    source_location: str = ""
    match_reason: MatchReason
    confidence: ConfidenceBreakdown

    @field_validator("source_quote")
    @classmethod
    def _quote_required(cls, v: str) -> str:
        return _require_text(v, "source_quote")


class ScopeJustification(_Model):
    within_primary_subject: bool
    within_specific_area: bool
    within_stated_scope: bool
    crosses_feature_boundary: bool
    requires_user_confirmation: bool


# ── Proposed changes ─────────────────────────────────────


class ProposedChange(_Model):
    """One candidate substitution of ``[start_index, end_index)``."""

    id: str
    document_id: str
    document_title: str
    section_name: str = ""
    page_number: int | None = None
    original_text: str
    proposed_text: str
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)
    status: ChangeStatus = ChangeStatus.PENDING
    user_edited_text: str | None = None
    evidence: ChangeEvidence
    scope_justification: ScopeJustification
    non_impact: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _range_matches_text(self) -> ProposedChange:
        if not self.original_text:
            raise ValueError("original_text must not be empty")
        if self.end_index - self.start_index != len(self.original_text):
            raise ValueError(
                "end_index - start_index must equal len(original_text)"
            )
        return self

    @property
    def effective_text(self) -> str:
        """Replacement text: the reviewer's edit wins over the proposal."""
        if self.user_edited_text is not None:
            return self.user_edited_text
        return self.proposed_text

    @property
    def overall(self) -> float:
        return self.evidence.confidence.overall


class AffectedDocument(_Model):
    """Per-document grouping view, always recomputed from the flat list."""

    document_id: str
    document_title: str
    total_changes: int
    overall_confidence: float
    changes: tuple[ProposedChange, ...]
    approved_count: int = 0
    rejected_count: int = 0
    pending_count: int = 0


class UploadedDocument(_Model):
    id: str
    file_name: str
    file_size: int
    extracted_content: str
    linked_to_project: str | None = None
    linked_to_assignment: str | None = None
    linked_to_task: str | None = None


class AnalysisSummary(_Model):
    total_documents: int = 0
    total_changes: int = 0
    high_confidence_changes: int = 0
    low_confidence_changes: int = 0


class AnalysisResult(_Model):
    uploaded_document: UploadedDocument
    affected_documents: tuple[AffectedDocument, ...] = ()
    summary: AnalysisSummary = AnalysisSummary()
    content_analysis: ContentAnalysis

    @property
    def changes(self) -> list[ProposedChange]:
        return [c for d in self.affected_documents for c in d.changes]

    @property
    def has_matches(self) -> bool:
        return self.summary.total_changes > 0


class ApplyResult(_Model):
    document_id: str
    change_id: str
    success: bool
    error: str | None = None
    new_version: str | None = None


# ── Diff ─────────────────────────────────────────────────


class DiffSegment(_Model):
    type: DiffType
    text: str


# ── Document store view ──────────────────────────────────


class CandidateDocument(_Model):
    """Index entry sent to the analysis service."""

    id: str
    title: str
    content: str


class VersionHistoryEntry(_Model):
    version: str
    created_at: datetime
    created_by: str | None = None
    change_notes: str = ""
    content_hash: str = ""
    content: str = ""


class DocumentSnapshot(_Model):
    """What the document store returns from ``get``."""

    id: str
    title: str
    content: str
    version: str
    version_history: tuple[VersionHistoryEntry, ...] = ()


class DocumentUpdate(_Model):
    """What the apply engine hands to the document store's ``update``."""

    content: str
    version: str
    version_history: tuple[VersionHistoryEntry, ...]


# ── Session aggregate ────────────────────────────────────


class DocumentControlState(_Model):
    """The session aggregate owned by the workflow controller."""

    session_id: str
    current_step: ControlStep = ControlStep.UPLOAD
    uploaded_file: UploadedFile | None = None
    linked_project: str | None = None
    linked_assignment: str | None = None
    linked_task: str | None = None
    analysis_progress: float = Field(default=0.0, ge=0.0, le=100.0)
    analysis_status: str = ""
    content_analysis: ContentAnalysis | None = None
    analysis_result: AnalysisResult | None = None
    no_matches: bool = False
    proposed_changes: tuple[ProposedChange, ...] = ()
    expanded_documents: frozenset[str] = frozenset()
    applied_changes: tuple[ApplyResult, ...] = ()
    saved_document_id: str | None = None
    summary: str = ""
    error: str | None = None
