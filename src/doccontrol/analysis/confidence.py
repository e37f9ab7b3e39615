"""Assign confidence scores to proposed changes."""

from __future__ import annotations

import math

from doccontrol.analysis.diff import unchanged_ratio
from doccontrol.constants import (
    DEFAULT_SUBJECT_MATCH,
    EVIDENCE_UNGROUNDED,
    EVIDENCE_VERBATIM,
    EXACT_SUBJECT_MATCH_MIN,
    RELATED_TOPIC_MIN,
    SCOPE_FLAG_PENALTY,
    ConfidenceBand,
    ConfidenceThreshold,
    MatchReason,
)
from doccontrol.schemas import ConfidenceBreakdown

# Reported vs recomputed overall may differ by rounding only.
_CONSISTENCY_TOLERANCE = 0.01


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def score(
    subject_match: float,
    factual_alignment: float,
    scope_containment: float,
    change_minimality: float,
) -> ConfidenceBreakdown:
    """Build a breakdown; inputs are clamped into [0, 1].

    ``overall`` is derived by the model from the fixed weights and is
    never supplied by the caller.
    """
    return ConfidenceBreakdown(
        subject_match=_clamp(subject_match),
        factual_alignment=_clamp(factual_alignment),
        scope_containment=_clamp(scope_containment),
        change_minimality=_clamp(change_minimality),
    )


def classify(overall: float) -> ConfidenceBand:
    """Map an overall score onto its threshold band."""
    if overall < ConfidenceThreshold.DO_NOT_PROPOSE:
        return ConfidenceBand.DO_NOT_PROPOSE
    if overall < ConfidenceThreshold.FLAGGED_FOR_REVIEW:
        return ConfidenceBand.FLAGGED_FOR_REVIEW
    if overall < ConfidenceThreshold.AUTO_APPROVE_ELIGIBLE:
        return ConfidenceBand.STANDARD_PROPOSAL
    return ConfidenceBand.AUTO_APPROVE_ELIGIBLE


def is_self_consistent(
    breakdown: ConfidenceBreakdown, reported_overall: float | None
) -> bool:
    """True if a service-reported overall matches the weighted sum."""
    if reported_overall is None:
        return True
    return (
        abs(breakdown.overall - reported_overall)
        <= _CONSISTENCY_TOLERANCE
    )


# ── Heuristic sub-scores ─────────────────────────────────


def subject_match_score(reported: float | None) -> float:
    if reported is None:
        return DEFAULT_SUBJECT_MATCH
    return _clamp(reported)


def evidence_directness(source_quote: str, uploaded_text: str) -> float:
    """0.9 when the quote appears verbatim in the upload, else 0.3."""
    quote = source_quote.strip()
    if quote and quote in uploaded_text:
        return EVIDENCE_VERBATIM
    return EVIDENCE_UNGROUNDED


def scope_containment_score(
    within_primary_subject: bool,
    within_specific_area: bool,
    within_stated_scope: bool,
    crosses_feature_boundary: bool,
) -> float:
    """Start at 1.0, lose a fixed penalty per failed scope check."""
    failures = sum((
        not within_primary_subject,
        not within_specific_area,
        not within_stated_scope,
        crosses_feature_boundary,
    ))
    return _clamp(1.0 - SCOPE_FLAG_PENALTY * failures)


def change_minimality(original: str, proposed: str) -> float:
    """Higher means a smaller, more surgical edit.

    Blends a length/word-overlap heuristic with the share of characters
    the word diff leaves untouched.
    """
    if not original or not proposed:
        return 0.5

    length_ratio = min(len(original), len(proposed)) / max(
        len(original), len(proposed)
    )
    old_words = set(original.lower().split())
    new_words = set(proposed.lower().split())
    denom = max(len(old_words), len(new_words)) or 1
    word_overlap = len(old_words & new_words) / denom

    heuristic = length_ratio * 0.3 + word_overlap * 0.7
    return _clamp((heuristic + unchanged_ratio(original, proposed)) / 2)


def match_reason(subject_match: float) -> MatchReason:
    if subject_match >= EXACT_SUBJECT_MATCH_MIN:
        return MatchReason.EXACT_SUBJECT_MATCH
    if subject_match >= RELATED_TOPIC_MIN:
        return MatchReason.RELATED_TOPIC
    return MatchReason.POSSIBLY_AFFECTED
