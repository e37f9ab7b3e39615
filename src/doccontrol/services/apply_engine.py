"""Write approved changes back to the document store.

Documents are processed concurrently (bounded); the changes of one
document are applied strictly in recorded order against the live
content fetched at the start of that document's write.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import partial

from doccontrol.analysis.diff import changed_characters, diff
from doccontrol.analysis.pipeline import ParallelGroup, PipelineStage
from doccontrol.config import Settings
from doccontrol.constants import CHANGE_NOTES_PREFIX, StageOutcome
from doccontrol.repositories.protocols import DocumentStore
from doccontrol.resilience.errors import StaleRangeError
from doccontrol.review.state_machine import approved_by_document
from doccontrol.schemas import (
    ApplyResult,
    DocumentSnapshot,
    DocumentUpdate,
    ProposedChange,
    VersionHistoryEntry,
)

logger = logging.getLogger(__name__)


def next_version(version: str, *, major: bool) -> str:
    """``major.minor`` -> ``major.minor+1`` or ``major+1.0``.

    Parts after the minor (e.g. a timestamp suffix) are ignored.
    """
    head, _, rest = version.partition(".")
    tail = rest.partition(".")[0]
    try:
        major_n = int(head)
    except ValueError:
        major_n = 1
    try:
        minor_n = int(tail) if tail else 0
    except ValueError:
        minor_n = 0
    if major:
        return f"{major_n + 1}.0"
    return f"{major_n}.{minor_n + 1}"


def change_notes(changes: list[ProposedChange]) -> str:
    sections = list(
        dict.fromkeys(c.section_name for c in changes if c.section_name)
    )
    if not sections:
        return CHANGE_NOTES_PREFIX
    return f"{CHANGE_NOTES_PREFIX}: {', '.join(sections)}"


@dataclass
class _Substitution:
    start: int
    end: int
    delta: int


@dataclass
class _Rewrite:
    """Result of substituting one document's changes in memory."""

    content: str
    applied: list[ProposedChange] = field(
        default_factory=lambda: list[ProposedChange]()
    )
    failed: dict[str, str] = field(default_factory=lambda: dict[str, str]())
    changed_chars: int = 0


def rewrite(content: str, changes: list[ProposedChange]) -> _Rewrite:
    """Substitute each change at its recorded range, shifted by the
    length deltas of earlier substitutions that precede it.

    A change whose range overlaps an earlier substitution, or whose
    range no longer holds ``original_text``, fails on its own.
    """
    result = _Rewrite(content=content)
    done: list[_Substitution] = []

    for change in changes:
        start, end = change.start_index, change.end_index
        try:
            if any(s.start < end and start < s.end for s in done):
                msg = (
                    f"Stale range: [{start}, {end}) overlaps an earlier "
                    "change to this document"
                )
                raise StaleRangeError(msg)
            shift = sum(s.delta for s in done if s.end <= start)
            lo, hi = start + shift, end + shift
            if result.content[lo:hi] != change.original_text:
                msg = (
                    f"Stale range: text at [{start}, {end}) no longer "
                    "matches the proposed change"
                )
                raise StaleRangeError(msg)
        except StaleRangeError as exc:
            logger.warning(
                "event=apply_change_failed change=%s doc=%s reason=stale",
                change.id,
                change.document_id,
            )
            result.failed[change.id] = str(exc)
            continue

        replacement = change.effective_text
        result.content = (
            result.content[:lo] + replacement + result.content[hi:]
        )
        done.append(
            _Substitution(start, end, len(replacement) - (end - start))
        )
        result.applied.append(change)
        result.changed_chars += changed_characters(
            diff(change.original_text, replacement)
        )

    return result


def _failed(changes: list[ProposedChange], error: str) -> list[ApplyResult]:
    return [
        ApplyResult(
            document_id=c.document_id,
            change_id=c.id,
            success=False,
            error=error,
        )
        for c in changes
    ]


async def _apply_document(
    document_id: str,
    changes: list[ProposedChange],
    store: DocumentStore,
    settings: Settings,
    user_id: str | None,
) -> list[ApplyResult]:
    try:
        current: DocumentSnapshot = await store.get(document_id)
    except Exception as exc:
        logger.warning(
            "event=apply_document_failed doc=%s stage=get error=%s",
            document_id,
            exc,
        )
        return _failed(changes, str(exc))

    rewritten = rewrite(current.content, changes)
    results_by_id: dict[str, ApplyResult] = {
        cid: ApplyResult(
            document_id=document_id,
            change_id=cid,
            success=False,
            error=error,
        )
        for cid, error in rewritten.failed.items()
    }

    if rewritten.applied:
        ratio = rewritten.changed_chars / max(len(current.content), 1)
        version = next_version(
            current.version,
            major=ratio > settings.major_version_change_ratio,
        )
        entry = VersionHistoryEntry(
            version=current.version,
            created_at=datetime.now(UTC),
            created_by=user_id,
            change_notes=change_notes(rewritten.applied),
            content_hash=hashlib.sha256(
                current.content.encode("utf-8")
            ).hexdigest(),
            content=current.content,
        )
        try:
            updated = await store.update(
                document_id,
                DocumentUpdate(
                    content=rewritten.content,
                    version=version,
                    version_history=(*current.version_history, entry),
                ),
                expected_version=current.version,
            )
        except Exception as exc:
            logger.warning(
                "event=apply_document_failed doc=%s stage=update error=%s",
                document_id,
                exc,
            )
            for c in rewritten.applied:
                results_by_id[c.id] = ApplyResult(
                    document_id=document_id,
                    change_id=c.id,
                    success=False,
                    error=str(exc),
                )
        else:
            logger.info(
                "event=document_updated doc=%s version=%s->%s "
                "applied=%d changed_ratio=%.3f",
                document_id,
                current.version,
                updated.version,
                len(rewritten.applied),
                ratio,
            )
            for c in rewritten.applied:
                results_by_id[c.id] = ApplyResult(
                    document_id=document_id,
                    change_id=c.id,
                    success=True,
                    new_version=updated.version,
                )

    return [results_by_id[c.id] for c in changes]


async def apply_approved_changes(
    changes: list[ProposedChange] | tuple[ProposedChange, ...],
    store: DocumentStore,
    settings: Settings | None = None,
    *,
    user_id: str | None = None,
) -> list[ApplyResult]:
    """Apply every ``approved`` change; one ApplyResult per change.

    Never raises for a single change or document failure: the error is
    recorded on that change's result and other documents continue.
    """
    cfg = settings or Settings()
    grouped = approved_by_document(changes)
    if not grouped:
        return []

    group = ParallelGroup[None](
        name="apply",
        stages=[
            PipelineStage(
                name=f"apply:{document_id}",
                execute=partial(
                    _run_document,
                    document_id,
                    doc_changes,
                    store,
                    cfg,
                    user_id,
                ),
            )
            for document_id, doc_changes in grouped.items()
        ],
        max_concurrency=cfg.apply_max_concurrency,
    )
    stage_results = await group.execute(None)

    results: list[ApplyResult] = []
    for doc_changes, stage in zip(
        grouped.values(), stage_results, strict=True
    ):
        if stage.status == StageOutcome.COMPLETED and stage.output is not None:
            results.extend(stage.output)
        else:
            results.extend(
                _failed(doc_changes, stage.error or "Apply did not run")
            )

    succeeded = sum(r.success for r in results)
    logger.info(
        "event=apply_done documents=%d changes=%d succeeded=%d failed=%d",
        len(grouped),
        len(results),
        succeeded,
        len(results) - succeeded,
    )
    return results


async def _run_document(
    document_id: str,
    changes: list[ProposedChange],
    store: DocumentStore,
    settings: Settings,
    user_id: str | None,
    _input: None,
) -> list[ApplyResult]:
    return await _apply_document(
        document_id, changes, store, settings, user_id
    )
