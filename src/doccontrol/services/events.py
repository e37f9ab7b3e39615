"""Progress events a session emits to its ``on_progress`` callback.

Progress is a UI signal only; nothing in the workflow reads it back.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from doccontrol.constants import STAGE_LABELS, StageProgress


@dataclass(frozen=True)
class StageEvent:
    """One stage of one session starting, finishing or failing.

    ``items`` is what a finished stage produced: candidate documents
    for ``candidate_match``, proposed changes for ``content_analysis``,
    applied changes for ``apply``. It stays None where a count means
    nothing, such as ``extract`` or any failure.
    """

    session_id: str
    name: str
    status: StageProgress
    message: str = ""
    duration_ms: float = 0.0
    percent: float | None = None
    items: int | None = None

    @property
    def label(self) -> str:
        return STAGE_LABELS[self.name]

    @property
    def finished(self) -> bool:
        return self.status != StageProgress.RUNNING


type ProgressCallback = Callable[[StageEvent], None]
