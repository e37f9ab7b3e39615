"""Session workflow controller.

Owns the ``DocumentControlState`` aggregate and is the only place that
sequences the other components:

    upload -> analyzing -> preview | error
    preview -> applying -> complete | error
    preview -> complete              (skip_and_save, no changes)
    any -> upload                    (reset; cancel while analyzing)

Every state change replaces the frozen aggregate with a copy, so a
reader holding an old ``state`` never sees it change underneath.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from doccontrol.analysis.adapter import run_content_analysis
from doccontrol.analysis.pipeline import PipelineStage
from doccontrol.config import Settings
from doccontrol.constants import (
    ID_HEX_LENGTH,
    PROGRESS_MAX,
    STAGE_LABELS,
    UPLOAD_PREVIEW_CHARS,
    ChangeStatus,
    ControlStep,
    StageOutcome,
    StageProgress,
)
from doccontrol.ingestion.extractor import validate_upload
from doccontrol.ingestion.schemas import UploadedFile
from doccontrol.logger import AuditLogger
from doccontrol.repositories.protocols import (
    ContentAnalysisService,
    ContentExtractor,
    DocumentStore,
)
from doccontrol.resilience.errors import (
    AnalysisTimeoutError,
    InvalidStepError,
    user_message,
)
from doccontrol.review import state_machine
from doccontrol.schemas import (
    AffectedDocument,
    AnalysisResult,
    ApplyResult,
    DocumentControlState,
    UploadedDocument,
)
from doccontrol.services.apply_engine import apply_approved_changes
from doccontrol.services.events import ProgressCallback, StageEvent

logger = logging.getLogger(__name__)

# Progress reached when each analysis stage finishes.
_PROGRESS_AFTER = {
    "extract": 20.0,
    "candidate_match": 35.0,
    "content_analysis": 90.0,
}


def _preview(text: str) -> str:
    if len(text) <= UPLOAD_PREVIEW_CHARS:
        return text
    return text[:UPLOAD_PREVIEW_CHARS] + "..."


def apply_summary(
    results: list[ApplyResult], titles: dict[str, str]
) -> str:
    """``N of M changes applied`` plus one line per failure."""
    succeeded = sum(r.success for r in results)
    lines = [f"{succeeded} of {len(results)} changes applied"]
    lines.extend(
        f"{titles.get(r.document_id, r.document_id)}: {r.error}"
        for r in results
        if not r.success
    )
    return "\n".join(lines)


class DocumentControlSession:
    """One upload-through-apply interaction.

    Review operations are synchronous and in-memory. ``start_analysis``
    runs the analysis in a task; a result that arrives after
    ``cancel_analysis`` or ``reset`` is discarded.
    """

    def __init__(
        self,
        store: DocumentStore,
        extractor: ContentExtractor,
        analysis_service: ContentAnalysisService,
        settings: Settings | None = None,
        *,
        audit: AuditLogger | None = None,
        on_progress: ProgressCallback | None = None,
        user_id: str | None = None,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._service = analysis_service
        self._settings = settings or Settings()
        self._audit = audit
        self._on_progress = on_progress
        self._user_id = user_id
        self._state = DocumentControlState(session_id=uuid.uuid4().hex)
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self._extracted_text = ""

    # ── State plumbing ────────────────────────────────────

    @property
    def state(self) -> DocumentControlState:
        return self._state

    @property
    def affected_documents(self) -> list[AffectedDocument]:
        return state_machine.group_by_document(self._state.proposed_changes)

    def _update(self, **fields: Any) -> None:
        self._state = self._state.model_copy(update=fields)

    def _require(self, *steps: ControlStep) -> None:
        if self._state.current_step not in steps:
            allowed = ", ".join(steps)
            msg = (
                f"Not allowed in step {self._state.current_step} "
                f"(expected {allowed})"
            )
            raise InvalidStepError(msg)

    def _enter(self, step: ControlStep, **fields: Any) -> None:
        previous = self._state.current_step
        self._update(current_step=step, **fields)
        logger.info(
            "event=session_step session=%s from=%s to=%s",
            self._state.session_id,
            previous,
            step,
        )
        if self._audit is not None:
            self._audit.log_stage(
                self._state.session_id,
                str(step),
                "entered",
                message=self._state.summary,
            )

    def _fail(self, component: str, exc: Exception) -> None:
        message = user_message(exc)
        logger.error(
            "event=session_error session=%s component=%s error=%s",
            self._state.session_id,
            component,
            exc,
        )
        if self._audit is not None:
            self._audit.log_error(self._state.session_id, component, str(exc))
        self._enter(ControlStep.ERROR, error=message, summary=message)

    def _report(
        self, name: str, status: StageProgress, **fields: Any
    ) -> None:
        if self._on_progress is not None:
            self._on_progress(
                StageEvent(
                    session_id=self._state.session_id,
                    name=name,
                    status=status,
                    **fields,
                )
            )

    def _advance(self, percent: float, status: str) -> None:
        # Progress never moves backwards within a run.
        self._update(
            analysis_progress=min(
                PROGRESS_MAX, max(self._state.analysis_progress, percent)
            ),
            analysis_status=status,
        )

    # ── Upload step ───────────────────────────────────────

    def set_uploaded_file(self, file: UploadedFile) -> None:
        """Validate and attach the upload; invalid files change nothing."""
        self._require(ControlStep.UPLOAD)
        validate_upload(file, self._settings)
        self._update(uploaded_file=file, error=None)

    def set_linked_project(self, project_id: str | None) -> None:
        self._require(ControlStep.UPLOAD)
        self._update(linked_project=project_id)

    def set_linked_assignment(self, assignment_id: str | None) -> None:
        self._require(ControlStep.UPLOAD)
        self._update(linked_assignment=assignment_id)

    def set_linked_task(self, task_id: str | None) -> None:
        self._require(ControlStep.UPLOAD)
        self._update(linked_task=task_id)

    # ── Analyzing step ────────────────────────────────────

    def start_analysis(self) -> asyncio.Task[None]:
        """Enter ``analyzing`` and start the run in a background task."""
        self._require(ControlStep.UPLOAD)
        if self._state.uploaded_file is None:
            msg = "No file uploaded"
            raise InvalidStepError(msg)
        self._generation += 1
        self._enter(
            ControlStep.ANALYZING,
            analysis_progress=0.0,
            analysis_status="",
            error=None,
            summary="",
        )
        self._task = asyncio.create_task(
            self._run_analysis(self._generation, self._state.uploaded_file)
        )
        return self._task

    async def analyze(self) -> DocumentControlState:
        """Run analysis to completion and return the resulting state."""
        task = self.start_analysis()
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            self.cancel_analysis()
            raise
        return self._state

    def cancel_analysis(self) -> None:
        """Stop waiting on the analysis and return to ``upload``."""
        self._require(ControlStep.ANALYZING)
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        logger.info(
            "event=analysis_cancelled session=%s", self._state.session_id
        )
        self._enter(
            ControlStep.UPLOAD,
            analysis_progress=0.0,
            analysis_status="",
            content_analysis=None,
            analysis_result=None,
            no_matches=False,
            proposed_changes=(),
        )

    async def _stage[T](
        self,
        generation: int,
        name: str,
        execute: Callable[[], Awaitable[T]],
        count: Callable[[T], int] | None = None,
    ) -> T:
        if generation == self._generation:
            self._report(name, StageProgress.RUNNING)
        result = await PipelineStage(
            name=name, execute=lambda _: execute()
        ).run(None)
        if generation != self._generation:
            # Superseded by cancel or reset: report nothing to the new session.
            return result.unwrap()

        ok = result.status == StageOutcome.COMPLETED
        if self._audit is not None:
            self._audit.log_stage(
                self._state.session_id,
                name,
                str(result.status),
                duration_ms=result.duration_ms,
                message=result.error or "",
            )
        items: int | None = None
        if ok:
            self._advance(_PROGRESS_AFTER[name], STAGE_LABELS[name])
            if count is not None:
                items = count(result.unwrap())
        self._report(
            name,
            StageProgress.DONE if ok else StageProgress.ERROR,
            message=result.error or "",
            duration_ms=result.duration_ms,
            percent=self._state.analysis_progress,
            items=items,
        )
        return result.unwrap()

    async def _run_analysis(
        self, generation: int, file: UploadedFile
    ) -> None:
        state = self._state
        timeout = self._settings.analysis_timeout_seconds
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                text = await self._stage(
                    generation,
                    "extract",
                    lambda: self._extractor.extract(file),
                )
                candidates = await self._stage(
                    generation,
                    "candidate_match",
                    lambda: self._store.list_candidates(
                        state.linked_project
                    ),
                    count=len,
                )
                uploaded = UploadedDocument(
                    id=uuid.uuid4().hex[:ID_HEX_LENGTH],
                    file_name=file.name,
                    file_size=file.size,
                    extracted_content=_preview(text),
                    linked_to_project=state.linked_project,
                    linked_to_assignment=state.linked_assignment,
                    linked_to_task=state.linked_task,
                )
                result = await self._stage(
                    generation,
                    "content_analysis",
                    lambda: run_content_analysis(
                        text, uploaded, candidates, self._service
                    ),
                    count=lambda r: len(r.changes),
                )
        except Exception as exc:
            if generation != self._generation:
                return
            if isinstance(exc, TimeoutError) and deadline.expired():
                exc = AnalysisTimeoutError(
                    f"Analysis did not finish within {timeout}s"
                )
            self._fail("analysis", exc)
            return

        if generation != self._generation:
            logger.info(
                "event=late_result_ignored session=%s",
                self._state.session_id,
            )
            return
        self._extracted_text = text
        self._commit_analysis(result)

    def _commit_analysis(self, result: AnalysisResult) -> None:
        summary = result.summary
        if result.has_matches:
            message = (
                f"{summary.total_changes} proposed changes across "
                f"{summary.total_documents} documents"
            )
        else:
            message = (
                "No existing documents need changes. "
                "The upload can be saved as a new document."
            )
        self._update(
            content_analysis=result.content_analysis,
            analysis_result=result,
            no_matches=not result.has_matches,
            proposed_changes=tuple(result.changes),
            analysis_progress=PROGRESS_MAX,
            summary=message,
        )
        self._enter(ControlStep.PREVIEW)

    # ── Preview step: review ──────────────────────────────

    def _review(
        self,
        operation: Callable[..., state_machine.Changes],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        self._require(ControlStep.PREVIEW)
        self._update(
            proposed_changes=operation(
                self._state.proposed_changes, *args, **kwargs
            )
        )

    def approve(self, change_id: str) -> None:
        self._review(state_machine.approve, change_id)

    def reject(self, change_id: str) -> None:
        self._review(state_machine.reject, change_id)

    def edit(self, change_id: str, text: str) -> None:
        self._review(state_machine.edit, change_id, text)

    def approve_all_for_document(self, document_id: str) -> None:
        self._review(state_machine.approve_all_for_document, document_id)

    def reject_all_for_document(self, document_id: str) -> None:
        self._review(state_machine.reject_all_for_document, document_id)

    def approve_all(
        self,
        *,
        include_flagged: bool = False,
        min_confidence: float | None = None,
    ) -> None:
        self._review(
            state_machine.approve_all,
            include_flagged=include_flagged,
            min_confidence=min_confidence,
        )

    def approve_eligible(self) -> None:
        self._review(state_machine.approve_eligible)

    def reject_all(self) -> None:
        self._review(state_machine.reject_all)

    def toggle_document_expanded(self, document_id: str) -> None:
        expanded = self._state.expanded_documents
        self._update(expanded_documents=expanded ^ {document_id})

    # ── Applying step ─────────────────────────────────────

    async def apply_changes(self) -> list[ApplyResult]:
        """Apply approved changes once; ends in complete or error."""
        self._require(ControlStep.PREVIEW)
        approved = [
            c
            for c in self._state.proposed_changes
            if c.status == ChangeStatus.APPROVED
        ]
        if not approved:
            msg = "No approved changes to apply"
            raise InvalidStepError(msg)

        self._enter(ControlStep.APPLYING)
        self._report("apply", StageProgress.RUNNING)
        results = await apply_approved_changes(
            approved, self._store, self._settings, user_id=self._user_id
        )
        if self._audit is not None:
            self._audit.log_apply(self._state.session_id, results)

        applied_ids = [r.change_id for r in results if r.success]
        titles = {c.document_id: c.document_title for c in approved}
        summary = apply_summary(results, titles)
        self._update(
            proposed_changes=state_machine.mark_applied(
                self._state.proposed_changes, applied_ids
            ),
            applied_changes=tuple(results),
        )
        self._report(
            "apply",
            StageProgress.DONE if applied_ids else StageProgress.ERROR,
            message=summary.splitlines()[0],
            items=len(applied_ids),
        )

        if not applied_ids:
            self._enter(ControlStep.ERROR, error=summary, summary=summary)
            return results

        saved_id = await self._file_upload()
        if saved_id is None:
            summary += "\nThe uploaded document could not be saved."
        self._enter(
            ControlStep.COMPLETE, saved_document_id=saved_id, summary=summary
        )
        return results

    async def _file_upload(self) -> str | None:
        """Store the upload as a new document; None if that fails."""
        file = self._state.uploaded_file
        if file is None:
            return None
        self._report("file_upload", StageProgress.RUNNING)
        try:
            doc = await self._store.create(
                file.name,
                self._extracted_text,
                project_id=self._state.linked_project,
            )
        except Exception as exc:
            logger.warning(
                "event=file_upload_failed session=%s error=%s",
                self._state.session_id,
                exc,
            )
            if self._audit is not None:
                self._audit.log_error(
                    self._state.session_id, "file_upload", str(exc)
                )
            self._report(
                "file_upload", StageProgress.ERROR, message=str(exc)
            )
            return None
        logger.info(
            "event=file_upload_saved session=%s doc=%s",
            self._state.session_id,
            doc.id,
        )
        self._report("file_upload", StageProgress.DONE)
        return doc.id

    async def skip_and_save(self) -> str | None:
        """Skip review and only file the upload as a new document."""
        self._require(ControlStep.PREVIEW)
        saved_id = await self._file_upload()
        if saved_id is None:
            message = "The uploaded document could not be saved."
            self._enter(ControlStep.ERROR, error=message, summary=message)
            return None
        file = self._state.uploaded_file
        name = file.name if file is not None else ""
        self._enter(
            ControlStep.COMPLETE,
            saved_document_id=saved_id,
            summary=f"Saved {name} as a new document",
        )
        return saved_id

    # ── Reset ─────────────────────────────────────────────

    def reset(self) -> None:
        """Discard everything and start a fresh session at ``upload``."""
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._extracted_text = ""
        previous = self._state.session_id
        self._state = DocumentControlState(session_id=uuid.uuid4().hex)
        logger.info(
            "event=session_reset previous=%s session=%s",
            previous,
            self._state.session_id,
        )
