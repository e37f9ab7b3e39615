"""Shared constants: the single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so downstream code (JSON, SQL,
log payloads) works unchanged.
"""

from __future__ import annotations

import math
from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class ChangeStatus(StrEnum):
    """Per-change review lifecycle."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"


class ControlStep(StrEnum):
    """Coarse session workflow step."""

    UPLOAD = "upload"
    ANALYZING = "analyzing"
    PREVIEW = "preview"
    APPLYING = "applying"
    COMPLETE = "complete"
    ERROR = "error"


class MatchReason(StrEnum):
    """Why a target passage was considered affected."""

    EXACT_SUBJECT_MATCH = "exact_subject_match"
    RELATED_TOPIC = "related_topic"
    POSSIBLY_AFFECTED = "possibly_affected"


class DiffType(StrEnum):
    """Word-diff segment type."""

    SAME = "same"
    REMOVED = "removed"
    ADDED = "added"


class ConfidenceBand(StrEnum):
    """Display band for an overall confidence score."""

    DO_NOT_PROPOSE = "do_not_propose"
    FLAGGED_FOR_REVIEW = "flagged_for_review"
    STANDARD_PROPOSAL = "standard_proposal"
    AUTO_APPROVE_ELIGIBLE = "auto_approve_eligible"


class StageProgress(StrEnum):
    """Progress status for pipeline stage events."""

    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class StageOutcome(StrEnum):
    """Outcome of an individual pipeline stage execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# ── Confidence Weights & Thresholds ──────────────────────


class ConfidenceWeight:
    """Fixed sub-score weights for the overall confidence."""

    SUBJECT_EXACT_MATCH = 0.30  # subjectMatch
    EVIDENCE_DIRECTNESS = 0.30  # factualAlignment
    SCOPE_CONTAINMENT = 0.25  # scopeContainment
    CHANGE_MINIMALITY = 0.15  # changeMinimality


class ConfidenceThreshold:
    """Lower bounds of each band, evaluated against ``overall``."""

    DO_NOT_PROPOSE = 0.30  # below: discarded by the adapter
    FLAGGED_FOR_REVIEW = 0.50  # [0.30, 0.50): flagged
    STANDARD_PROPOSAL = 0.70  # [0.50, 0.90): standard
    AUTO_APPROVE_ELIGIBLE = 0.90  # >= 0.90: one-click eligible


_WEIGHT_SUM = (
    ConfidenceWeight.SUBJECT_EXACT_MATCH
    + ConfidenceWeight.EVIDENCE_DIRECTNESS
    + ConfidenceWeight.SCOPE_CONTAINMENT
    + ConfidenceWeight.CHANGE_MINIMALITY
)
if not math.isclose(_WEIGHT_SUM, 1.0):
    raise RuntimeError(
        f"Confidence weights must sum to 1.0, got {_WEIGHT_SUM}"
    )

# Subject-match cut-offs for matchReason / scope flags
EXACT_SUBJECT_MATCH_MIN = 0.90
RELATED_TOPIC_MIN = 0.60
WITHIN_PRIMARY_SUBJECT_MIN = 0.80
WITHIN_SPECIFIC_AREA_MIN = 0.70

# Heuristic sub-score values
DEFAULT_SUBJECT_MATCH = 0.5
EVIDENCE_VERBATIM = 0.9
EVIDENCE_UNGROUNDED = 0.3
SCOPE_FLAG_PENALTY = 0.25

# ── Circuit Breaker Configuration ────────────────────────

CB_LLM_FAILURE_THRESHOLD = 5
CB_LLM_RECOVERY_TIMEOUT = 30

# ── Retry Strategy ───────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_WAIT = 2
RETRY_MAX_WAIT = 30

# ── LLM Output ───────────────────────────────────────────

LLM_MAX_OUTPUT_TOKENS = 4096

# ── Diff ─────────────────────────────────────────────────

DIFF_LOOKAHEAD = 5

# ── Versioning ───────────────────────────────────────────

INITIAL_VERSION = "1.0"
CHANGE_NOTES_PREFIX = "AI-assisted update"

# ── Uploads ──────────────────────────────────────────────

DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
UPLOAD_PREVIEW_CHARS = 1000
MISC_FOLDER = "/Miscellaneous"

# ── ID Generation ───────────────────────────────────────

ID_HEX_LENGTH = 12
CHANGE_ID_PREFIX = "change_"

# ── Misc ─────────────────────────────────────────────────

ERROR_TRUNCATION_CHARS = 200
PROGRESS_MAX = 100.0

# ── Stage Labels (user-facing) ─────────────────────────

STAGE_LABELS: dict[str, str] = {
    "extract": "Extracting document content",
    "content_analysis": "Analyzing document content",
    "candidate_match": "Finding related documents",
    "apply": "Applying changes",
    "file_upload": "Saving uploaded document",
}
