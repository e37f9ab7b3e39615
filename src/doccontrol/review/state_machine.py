"""Per-change review lifecycle as pure functions over a change tuple.

Each operation takes the current changes and returns a new tuple; the
inputs are never mutated and the set of ids never changes.

    pending -> approved | rejected
    approved <-> rejected
    approved -> applied          (apply engine only)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from statistics import fmean

from doccontrol.analysis.confidence import classify
from doccontrol.constants import (
    ChangeStatus,
    ConfidenceBand,
    ConfidenceThreshold,
)
from doccontrol.resilience.errors import IllegalTransitionError
from doccontrol.schemas import AffectedDocument, ProposedChange

Changes = tuple[ProposedChange, ...]

_ALLOWED: dict[ChangeStatus, frozenset[ChangeStatus]] = {
    ChangeStatus.PENDING: frozenset(
        {ChangeStatus.APPROVED, ChangeStatus.REJECTED}
    ),
    ChangeStatus.APPROVED: frozenset(
        {ChangeStatus.REJECTED, ChangeStatus.APPLIED}
    ),
    ChangeStatus.REJECTED: frozenset({ChangeStatus.APPROVED}),
    ChangeStatus.APPLIED: frozenset(),
}


def can_transition(current: ChangeStatus, target: ChangeStatus) -> bool:
    """Re-deciding the same status is a no-op, except once applied."""
    if current == ChangeStatus.APPLIED:
        return False
    return target == current or target in _ALLOWED[current]


def _index_of(changes: Changes, change_id: str) -> int:
    for idx, change in enumerate(changes):
        if change.id == change_id:
            return idx
    raise KeyError(change_id)


def _with_status(
    change: ProposedChange, target: ChangeStatus
) -> ProposedChange:
    if not can_transition(change.status, target):
        msg = (
            f"Change {change.id} cannot move from "
            f"{change.status} to {target}"
        )
        raise IllegalTransitionError(msg)
    if change.status == target:
        return change
    return change.model_copy(update={"status": target})


def _replace(
    changes: Changes, idx: int, change: ProposedChange
) -> Changes:
    return changes[:idx] + (change,) + changes[idx + 1 :]


def approve(changes: Changes, change_id: str) -> Changes:
    idx = _index_of(changes, change_id)
    return _replace(
        changes, idx, _with_status(changes[idx], ChangeStatus.APPROVED)
    )


def reject(changes: Changes, change_id: str) -> Changes:
    idx = _index_of(changes, change_id)
    return _replace(
        changes, idx, _with_status(changes[idx], ChangeStatus.REJECTED)
    )


def edit(changes: Changes, change_id: str, text: str) -> Changes:
    """Set the reviewer's replacement text; status is left alone."""
    idx = _index_of(changes, change_id)
    change = changes[idx]
    if change.status == ChangeStatus.APPLIED:
        msg = f"Change {change.id} is already applied"
        raise IllegalTransitionError(msg)
    return _replace(
        changes, idx, change.model_copy(update={"user_edited_text": text})
    )


def _decide_pending(
    changes: Changes,
    target: ChangeStatus,
    selects: Callable[[ProposedChange], bool],
) -> Changes:
    return tuple(
        c.model_copy(update={"status": target})
        if c.status == ChangeStatus.PENDING and selects(c)
        else c
        for c in changes
    )


def approve_all_for_document(changes: Changes, document_id: str) -> Changes:
    return _decide_pending(
        changes,
        ChangeStatus.APPROVED,
        lambda c: c.document_id == document_id,
    )


def reject_all_for_document(changes: Changes, document_id: str) -> Changes:
    return _decide_pending(
        changes,
        ChangeStatus.REJECTED,
        lambda c: c.document_id == document_id,
    )


def approve_all(
    changes: Changes,
    *,
    include_flagged: bool = False,
    min_confidence: float | None = None,
) -> Changes:
    """Approve pending changes.

    Flagged-for-review changes are skipped unless ``include_flagged``.
    ``min_confidence`` narrows further, e.g. to the auto-approve band.
    """

    def selects(change: ProposedChange) -> bool:
        band = classify(change.overall)
        if band == ConfidenceBand.FLAGGED_FOR_REVIEW and not include_flagged:
            return False
        return min_confidence is None or change.overall >= min_confidence

    return _decide_pending(changes, ChangeStatus.APPROVED, selects)


def approve_eligible(changes: Changes) -> Changes:
    """One-click approval of the auto-approve band."""
    return approve_all(
        changes, min_confidence=ConfidenceThreshold.AUTO_APPROVE_ELIGIBLE
    )


def reject_all(changes: Changes) -> Changes:
    return _decide_pending(changes, ChangeStatus.REJECTED, lambda _: True)


def mark_applied(changes: Changes, change_ids: Iterable[str]) -> Changes:
    """Move the given approved changes to ``applied``."""
    wanted = set(change_ids)
    updated = list(changes)
    for idx, change in enumerate(changes):
        if change.id in wanted:
            updated[idx] = _with_status(change, ChangeStatus.APPLIED)
    return tuple(updated)


def approved_by_document(
    changes: Iterable[ProposedChange],
) -> dict[str, list[ProposedChange]]:
    """Approved changes per document, each list in recorded order."""
    grouped: dict[str, list[ProposedChange]] = {}
    for change in changes:
        if change.status == ChangeStatus.APPROVED:
            grouped.setdefault(change.document_id, []).append(change)
    return grouped


def group_by_document(
    changes: Iterable[ProposedChange],
) -> list[AffectedDocument]:
    """Recompute the per-document view from the flat list."""
    grouped: dict[str, list[ProposedChange]] = {}
    for change in changes:
        grouped.setdefault(change.document_id, []).append(change)

    documents: list[AffectedDocument] = []
    for document_id, items in grouped.items():
        documents.append(
            AffectedDocument(
                document_id=document_id,
                document_title=items[0].document_title,
                total_changes=len(items),
                overall_confidence=fmean(c.overall for c in items),
                changes=tuple(items),
                approved_count=sum(
                    c.status == ChangeStatus.APPROVED for c in items
                ),
                rejected_count=sum(
                    c.status == ChangeStatus.REJECTED for c in items
                ),
                pending_count=sum(
                    c.status == ChangeStatus.PENDING for c in items
                ),
            )
        )
    return documents


@dataclass(frozen=True)
class ReviewStats:
    total: int
    pending: int
    approved: int
    rejected: int
    applied: int
    high_confidence: int
    low_confidence: int
    documents: int


def review_stats(changes: Iterable[ProposedChange]) -> ReviewStats:
    items = list(changes)

    def count(status: ChangeStatus) -> int:
        return sum(c.status == status for c in items)

    return ReviewStats(
        total=len(items),
        pending=count(ChangeStatus.PENDING),
        approved=count(ChangeStatus.APPROVED),
        rejected=count(ChangeStatus.REJECTED),
        applied=count(ChangeStatus.APPLIED),
        high_confidence=sum(
            c.overall >= ConfidenceThreshold.STANDARD_PROPOSAL for c in items
        ),
        low_confidence=sum(
            c.overall < ConfidenceThreshold.FLAGGED_FOR_REVIEW for c in items
        ),
        documents=len({c.document_id for c in items}),
    )
