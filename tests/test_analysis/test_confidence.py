"""Tests for the confidence scorer."""

from __future__ import annotations

import math

import pytest
from pydantic import ValidationError

from doccontrol.analysis.confidence import (
    change_minimality,
    classify,
    evidence_directness,
    is_self_consistent,
    match_reason,
    scope_containment_score,
    score,
    subject_match_score,
)
from doccontrol.constants import (
    ConfidenceBand,
    ConfidenceWeight,
    MatchReason,
)
from doccontrol.schemas import ConfidenceBreakdown

GRID = [0.0, 0.25, 0.5, 0.75, 1.0]


def test_weights_sum_to_one() -> None:
    total = (
        ConfidenceWeight.SUBJECT_EXACT_MATCH
        + ConfidenceWeight.EVIDENCE_DIRECTNESS
        + ConfidenceWeight.SCOPE_CONTAINMENT
        + ConfidenceWeight.CHANGE_MINIMALITY
    )
    assert math.isclose(total, 1.0)


def test_overall_is_weighted_sum() -> None:
    b = score(1.0, 0.5, 0.2, 0.0)
    assert b.overall == pytest.approx(0.30 + 0.15 + 0.05)


def test_overall_is_serialized_but_not_settable() -> None:
    b = score(0.8, 0.8, 0.8, 0.8)
    dumped = b.model_dump(by_alias=True)
    assert dumped["overall"] == pytest.approx(0.8)
    assert dumped["subjectMatch"] == 0.8

    # An injected overall is ignored; it is always derived.
    rebuilt = ConfidenceBreakdown.model_validate(
        {**dumped, "overall": 0.1}
    )
    assert rebuilt.overall == pytest.approx(0.8)


def test_scores_outside_unit_interval_rejected() -> None:
    with pytest.raises(ValidationError):
        ConfidenceBreakdown(
            subject_match=1.5,
            factual_alignment=0.5,
            scope_containment=0.5,
            change_minimality=0.5,
        )


def test_score_clamps_inputs() -> None:
    b = score(1.7, -0.2, float("nan"), 0.5)
    assert b.subject_match == 1.0
    assert b.factual_alignment == 0.0
    assert b.scope_containment == 0.0


@pytest.mark.parametrize("position", range(4))
@pytest.mark.parametrize("base", GRID)
def test_monotonic_in_each_sub_score(position: int, base: float) -> None:
    """Raising one sub-score never lowers overall."""
    previous = -1.0
    for value in GRID:
        args = [base] * 4
        args[position] = value
        overall = score(*args).overall
        assert overall >= previous
        previous = overall


@pytest.mark.parametrize(
    ("overall", "band"),
    [
        (0.0, ConfidenceBand.DO_NOT_PROPOSE),
        (0.29, ConfidenceBand.DO_NOT_PROPOSE),
        (0.30, ConfidenceBand.FLAGGED_FOR_REVIEW),
        (0.49, ConfidenceBand.FLAGGED_FOR_REVIEW),
        (0.50, ConfidenceBand.STANDARD_PROPOSAL),
        (0.70, ConfidenceBand.STANDARD_PROPOSAL),
        (0.89, ConfidenceBand.STANDARD_PROPOSAL),
        (0.90, ConfidenceBand.AUTO_APPROVE_ELIGIBLE),
        (1.0, ConfidenceBand.AUTO_APPROVE_ELIGIBLE),
    ],
)
def test_classify_bands(overall: float, band: ConfidenceBand) -> None:
    assert classify(overall) == band


class TestSelfConsistency:
    def test_missing_reported_overall_is_consistent(self) -> None:
        assert is_self_consistent(score(0.5, 0.5, 0.5, 0.5), None)

    def test_matching_overall_within_rounding(self) -> None:
        assert is_self_consistent(score(0.5, 0.5, 0.5, 0.5), 0.505)

    def test_mismatching_overall(self) -> None:
        assert not is_self_consistent(score(0.5, 0.5, 0.5, 0.5), 0.9)


class TestHeuristics:
    def test_subject_match_defaults(self) -> None:
        assert subject_match_score(None) == 0.5
        assert subject_match_score(0.95) == 0.95
        assert subject_match_score(3.0) == 1.0

    def test_evidence_verbatim_vs_ungrounded(self) -> None:
        upload = "The rollout will begin March 1 for all regions."
        assert evidence_directness("rollout will begin March 1", upload) == 0.9
        assert evidence_directness("rollout starts in April", upload) == 0.3
        assert evidence_directness("   ", upload) == 0.3

    def test_scope_penalty_per_failed_flag(self) -> None:
        assert scope_containment_score(True, True, True, False) == 1.0
        assert scope_containment_score(False, True, True, False) == 0.75
        assert scope_containment_score(False, False, True, True) == 0.25
        assert scope_containment_score(False, False, False, True) == 0.0

    def test_minimality_prefers_small_edits(self) -> None:
        small = change_minimality(
            "rollout will begin February 15",
            "rollout will begin March 1",
        )
        large = change_minimality(
            "rollout will begin February 15",
            "the whole launch is cancelled indefinitely",
        )
        assert 0.0 <= large < small <= 1.0

    def test_minimality_empty_side(self) -> None:
        assert change_minimality("", "x") == 0.5

    @pytest.mark.parametrize(
        ("subject", "reason"),
        [
            (0.95, MatchReason.EXACT_SUBJECT_MATCH),
            (0.9, MatchReason.EXACT_SUBJECT_MATCH),
            (0.7, MatchReason.RELATED_TOPIC),
            (0.6, MatchReason.RELATED_TOPIC),
            (0.3, MatchReason.POSSIBLY_AFFECTED),
        ],
    )
    def test_match_reason(self, subject: float, reason: MatchReason) -> None:
        assert match_reason(subject) == reason
