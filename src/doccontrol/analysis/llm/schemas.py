"""Lenient pydantic models for the analysis service's raw JSON.

These mirror what the service is asked to return. They accept missing
optional fields so a single sloppy edit can be dropped individually;
the adapter converts them into the strict models in
``doccontrol.schemas``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Raw(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RawConfidence(_Raw):
    """Pre-scored breakdown, re-validated by the adapter."""

    subject_match: float
    factual_alignment: float
    scope_containment: float
    change_minimality: float
    overall: float | None = None


class RawScope(_Raw):
    within_primary_subject: bool | None = None
    within_specific_area: bool | None = None
    within_stated_scope: bool | None = None
    crosses_feature_boundary: bool | None = None


class RawProposedEdit(_Raw):
    document_id: str
    section_name: str = ""
    page_number: int | None = None
    original_text: str
    proposed_text: str
    source_quote: str = ""
    source_location: str = ""
    subject_match_score: float | None = None
    confidence: RawConfidence | None = None
    scope_justification: RawScope | None = None
    non_impact: list[str] = Field(default_factory=lambda: list[str]())
    reasoning: str = ""


class RawFact(_Raw):
    statement: str = ""
    confidence: float = 0.5
    source_location: str = ""
    verbatim_quote: str = ""


class RawSubject(_Raw):
    domain: str
    specific_area: str
    scope: str


class RawContentAnalysis(_Raw):
    primary_subject: RawSubject
    explicit_facts: list[RawFact] = Field(
        default_factory=lambda: list[RawFact]()
    )
    out_of_scope: list[str] = Field(default_factory=lambda: list[str]())
    stated_boundaries: list[str] = Field(
        default_factory=lambda: list[str]()
    )


class RawAnalysisResponse(_Raw):
    """Top-level envelope; failing this is a session-fatal error."""

    content_analysis: RawContentAnalysis
    # Items stay untyped so one bad entry is dropped, not fatal.
    proposed_changes: list[Any] = Field(default_factory=lambda: list[Any]())
