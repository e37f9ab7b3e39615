"""Structured JSON audit log for document control sessions."""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from doccontrol.constants import ERROR_TRUNCATION_CHARS
from doccontrol.schemas import ApplyResult

__all__ = ["AuditLogger"]


class AuditLogger:
    """JSON-lines audit trail with session_id correlation.

    One line per stage transition, apply outcome, or error. Applied
    content is never logged, only ids, versions and error text.
    """

    def __init__(self, log_dir: Path, level: str = "INFO") -> None:
        self._log_dir = log_dir
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._logger = logging.getLogger("doccontrol.audit")
        self._logger.setLevel(getattr(logging, level.upper()))

        if not self._logger.handlers:
            handler = logging.FileHandler(log_dir / "audit.log")
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    def _emit(self, level: int, payload: dict[str, Any]) -> None:
        payload["timestamp"] = datetime.now(UTC).isoformat()
        self._logger.log(level, json.dumps(payload))

    def log_stage(
        self,
        session_id: str,
        step: str,
        status: str,
        duration_ms: float = 0.0,
        message: str = "",
    ) -> None:
        self._emit(logging.INFO, {
            "type": "stage",
            "session_id": session_id,
            "step": step,
            "status": status,
            "duration_ms": duration_ms,
            "message": message[:ERROR_TRUNCATION_CHARS],
        })

    def log_apply(
        self, session_id: str, results: list[ApplyResult]
    ) -> None:
        for r in results:
            self._emit(
                logging.INFO if r.success else logging.WARNING,
                {
                    "type": "apply",
                    "session_id": session_id,
                    "document_id": r.document_id,
                    "change_id": r.change_id,
                    "success": r.success,
                    "new_version": r.new_version,
                    "error": r.error,
                },
            )

    def log_error(
        self,
        session_id: str,
        component: str,
        error: str,
    ) -> None:
        self._emit(logging.ERROR, {
            "type": "error",
            "session_id": session_id,
            "component": component,
            "error": error[:ERROR_TRUNCATION_CHARS],
        })
