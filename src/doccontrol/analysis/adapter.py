"""Content analyzer adapter: untyped service output -> AnalysisResult.

All validation happens here. Anything that fails structural checks or
quote grounding is dropped (per edit) or raised (whole envelope) before
it reaches review, so downstream code only sees typed models.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from pydantic import ValidationError

from doccontrol.analysis.confidence import (
    change_minimality,
    evidence_directness,
    is_self_consistent,
    match_reason,
    scope_containment_score,
    score,
    subject_match_score,
)
from doccontrol.analysis.llm.schemas import (
    RawAnalysisResponse,
    RawContentAnalysis,
    RawProposedEdit,
    RawScope,
)
from doccontrol.constants import (
    CHANGE_ID_PREFIX,
    ID_HEX_LENGTH,
    WITHIN_PRIMARY_SUBJECT_MIN,
    WITHIN_SPECIFIC_AREA_MIN,
    ConfidenceThreshold,
)
from doccontrol.repositories.protocols import (
    AnalysisRequest,
    ContentAnalysisService,
)
from doccontrol.resilience.errors import MalformedAnalysisResponseError
from doccontrol.review.state_machine import group_by_document
from doccontrol.schemas import (
    AnalysisResult,
    AnalysisSummary,
    CandidateDocument,
    ChangeEvidence,
    ConfidenceBreakdown,
    ContentAnalysis,
    ExplicitFact,
    PrimarySubject,
    ProposedChange,
    ScopeJustification,
    UploadedDocument,
)

logger = logging.getLogger(__name__)


def new_change_id() -> str:
    return f"{CHANGE_ID_PREFIX}{uuid.uuid4().hex[:ID_HEX_LENGTH]}"


def _convert_analysis(raw: RawContentAnalysis) -> ContentAnalysis:
    facts: list[ExplicitFact] = []
    for fact in raw.explicit_facts:
        if not fact.verbatim_quote.strip():
            logger.warning(
                "event=fact_dropped reason=empty_quote statement=%r",
                fact.statement[:80],
            )
            continue
        facts.append(
            ExplicitFact(
                statement=fact.statement,
                confidence=max(0.0, min(1.0, fact.confidence)),
                source_location=fact.source_location,
                verbatim_quote=fact.verbatim_quote,
            )
        )
    subject = raw.primary_subject
    return ContentAnalysis(
        primary_subject=PrimarySubject(
            domain=subject.domain,
            specific_area=subject.specific_area,
            scope=subject.scope,
        ),
        explicit_facts=tuple(facts),
        out_of_scope=tuple(raw.out_of_scope),
        stated_boundaries=tuple(raw.stated_boundaries),
    )


def parse_content_analysis(raw: dict[str, Any]) -> ContentAnalysis:
    """Validate a bare content-analysis object.

    Raises:
        MalformedAnalysisResponseError: if the subject block is missing
            or the object does not match the expected shape.
    """
    try:
        parsed = RawContentAnalysis.model_validate(raw)
    except ValidationError as exc:
        msg = f"Malformed content analysis: {exc.error_count()} error(s)"
        raise MalformedAnalysisResponseError(msg) from exc
    return _convert_analysis(parsed)


def _scope_flags(
    raw: RawScope | None, subject_match: float
) -> tuple[bool, bool, bool, bool]:
    """Explicit flags from the service win; missing ones are inferred."""
    raw = raw or RawScope()
    return (
        raw.within_primary_subject
        if raw.within_primary_subject is not None
        else subject_match >= WITHIN_PRIMARY_SUBJECT_MIN,
        raw.within_specific_area
        if raw.within_specific_area is not None
        else subject_match >= WITHIN_SPECIFIC_AREA_MIN,
        raw.within_stated_scope
        if raw.within_stated_scope is not None
        else True,
        raw.crosses_feature_boundary
        if raw.crosses_feature_boundary is not None
        else False,
    )


def _breakdown(
    edit: RawProposedEdit,
    uploaded_text: str,
    scope_flags: tuple[bool, bool, bool, bool],
) -> ConfidenceBreakdown:
    if edit.confidence is not None:
        pre = edit.confidence
        breakdown = score(
            pre.subject_match,
            pre.factual_alignment,
            pre.scope_containment,
            pre.change_minimality,
        )
        if not is_self_consistent(breakdown, pre.overall):
            logger.warning(
                "event=confidence_inconsistent doc=%s reported=%.3f "
                "recomputed=%.3f",
                edit.document_id,
                pre.overall,
                breakdown.overall,
            )
        return breakdown

    return score(
        subject_match_score(edit.subject_match_score),
        evidence_directness(edit.source_quote, uploaded_text),
        scope_containment_score(*scope_flags),
        change_minimality(edit.original_text, edit.proposed_text),
    )


def build_change(
    raw: Any,
    documents: dict[str, CandidateDocument],
    uploaded_text: str,
) -> ProposedChange | None:
    """Convert one raw edit, or return None if it must be dropped."""
    try:
        edit = RawProposedEdit.model_validate(raw)
    except ValidationError as exc:
        logger.warning(
            "event=edit_dropped reason=invalid_shape errors=%d",
            exc.error_count(),
        )
        return None

    if not edit.source_quote.strip():
        logger.warning(
            "event=edit_dropped reason=empty_quote doc=%s",
            edit.document_id,
        )
        return None

    target = documents.get(edit.document_id)
    if target is None:
        logger.warning(
            "event=edit_dropped reason=unknown_document doc=%s",
            edit.document_id,
        )
        return None

    start = -1
    if edit.original_text:
        start = target.content.find(edit.original_text)
    if start < 0:
        logger.warning(
            "event=edit_dropped reason=original_not_found doc=%s",
            edit.document_id,
        )
        return None

    reported_subject = (
        edit.confidence.subject_match
        if edit.confidence is not None
        else subject_match_score(edit.subject_match_score)
    )
    flags = _scope_flags(edit.scope_justification, reported_subject)
    breakdown = _breakdown(edit, uploaded_text, flags)

    if breakdown.overall < ConfidenceThreshold.DO_NOT_PROPOSE:
        logger.info(
            "event=edit_dropped reason=below_threshold doc=%s overall=%.3f",
            edit.document_id,
            breakdown.overall,
        )
        return None

    within_primary, within_area, within_scope, crosses = flags
    return ProposedChange(
        id=new_change_id(),
        document_id=target.id,
        document_title=target.title,
        section_name=edit.section_name,
        page_number=edit.page_number,
        original_text=edit.original_text,
        proposed_text=edit.proposed_text,
        start_index=start,
        end_index=start + len(edit.original_text),
        evidence=ChangeEvidence(
            source_quote=edit.source_quote,
            source_location=edit.source_location or "Uploaded document",
            match_reason=match_reason(breakdown.subject_match),
            confidence=breakdown,
        ),
        scope_justification=ScopeJustification(
            within_primary_subject=within_primary,
            within_specific_area=within_area,
            within_stated_scope=within_scope,
            crosses_feature_boundary=crosses,
            requires_user_confirmation=(
                breakdown.overall < ConfidenceThreshold.STANDARD_PROPOSAL
                or crosses
            ),
        ),
        non_impact=tuple(edit.non_impact),
    )


def summarize(changes: list[ProposedChange]) -> AnalysisSummary:
    return AnalysisSummary(
        total_documents=len({c.document_id for c in changes}),
        total_changes=len(changes),
        high_confidence_changes=sum(
            c.overall >= ConfidenceThreshold.STANDARD_PROPOSAL
            for c in changes
        ),
        low_confidence_changes=sum(
            c.overall < ConfidenceThreshold.FLAGGED_FOR_REVIEW
            for c in changes
        ),
    )


def build_result(
    raw: dict[str, Any],
    uploaded: UploadedDocument,
    uploaded_text: str,
    candidates: list[CandidateDocument],
) -> AnalysisResult:
    """Validate the whole response envelope and assemble the result.

    A bad envelope is fatal; individual edits are dropped one by one.
    """
    try:
        envelope = RawAnalysisResponse.model_validate(raw)
    except ValidationError as exc:
        msg = (
            "Analysis response is malformed: "
            f"{exc.error_count()} validation error(s)"
        )
        raise MalformedAnalysisResponseError(msg) from exc

    analysis = _convert_analysis(envelope.content_analysis)
    documents = {c.id: c for c in candidates}

    changes: list[ProposedChange] = []
    for raw_edit in envelope.proposed_changes:
        change = build_change(raw_edit, documents, uploaded_text)
        if change is not None:
            changes.append(change)

    dropped = len(envelope.proposed_changes) - len(changes)
    logger.info(
        "event=analysis_adapted received=%d kept=%d dropped=%d",
        len(envelope.proposed_changes),
        len(changes),
        dropped,
    )

    return AnalysisResult(
        uploaded_document=uploaded,
        affected_documents=tuple(group_by_document(changes)),
        summary=summarize(changes),
        content_analysis=analysis,
    )


async def run_content_analysis(
    uploaded_text: str,
    uploaded: UploadedDocument,
    candidates: list[CandidateDocument],
    service: ContentAnalysisService,
) -> AnalysisResult:
    """Call the analysis service once and adapt its response."""
    raw = await service.analyze(
        AnalysisRequest(
            uploaded_text=uploaded_text,
            file_name=uploaded.file_name,
            candidates=candidates,
        )
    )
    if not isinstance(raw, dict):
        msg = "Analysis response is not a JSON object"
        raise MalformedAnalysisResponseError(msg)
    return build_result(raw, uploaded, uploaded_text, candidates)
