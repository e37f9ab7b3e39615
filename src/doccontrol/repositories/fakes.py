"""In-memory fakes for testing.

Dict-backed implementations of the collaborator protocols.
Nothing here touches SQLAlchemy or an LLM.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

from doccontrol.constants import ID_HEX_LENGTH, INITIAL_VERSION
from doccontrol.ingestion.schemas import UploadedFile
from doccontrol.repositories.protocols import AnalysisRequest
from doccontrol.resilience.errors import (
    DocumentNotFoundError,
    VersionConflictError,
)
from doccontrol.schemas import (
    CandidateDocument,
    DocumentSnapshot,
    DocumentUpdate,
)


class FakeDocumentStore:
    """Dict-backed DocumentStore with failure injection.

    ``unreachable`` ids raise ConnectionError on any access;
    ``failing_updates`` ids raise ConnectionError on write only.
    """

    def __init__(self) -> None:
        self._store: dict[str, DocumentSnapshot] = {}
        self._projects: dict[str, str | None] = {}
        self.unreachable: set[str] = set()
        self.failing_updates: set[str] = set()
        self.update_calls: list[tuple[str, DocumentUpdate]] = []
        self.created: list[DocumentSnapshot] = []

    def seed(
        self,
        title: str,
        content: str,
        *,
        document_id: str | None = None,
        version: str = INITIAL_VERSION,
        project_id: str | None = None,
    ) -> DocumentSnapshot:
        doc = DocumentSnapshot(
            id=document_id or uuid.uuid4().hex[:ID_HEX_LENGTH],
            title=title,
            content=content,
            version=version,
        )
        self._store[doc.id] = doc
        self._projects[doc.id] = project_id
        return doc

    def external_edit(self, document_id: str, content: str) -> None:
        """Simulate a concurrent edit made outside the session."""
        doc = self._store[document_id]
        major, _, minor = doc.version.partition(".")
        self._store[document_id] = doc.model_copy(
            update={
                "content": content,
                "version": f"{major}.{int(minor or 0) + 1}",
            }
        )

    def _check_reachable(self, document_id: str) -> None:
        if document_id in self.unreachable:
            msg = f"Connection refused: document store ({document_id})"
            raise ConnectionError(msg)

    async def get(self, document_id: str) -> DocumentSnapshot:
        self._check_reachable(document_id)
        doc = self._store.get(document_id)
        if doc is None:
            msg = f"Document not found: {document_id}"
            raise DocumentNotFoundError(msg)
        return doc

    async def update(
        self,
        document_id: str,
        update: DocumentUpdate,
        *,
        expected_version: str,
    ) -> DocumentSnapshot:
        self._check_reachable(document_id)
        if document_id in self.failing_updates:
            msg = f"Connection reset while writing {document_id}"
            raise ConnectionError(msg)
        current = self._store.get(document_id)
        if current is None:
            msg = f"Document not found: {document_id}"
            raise DocumentNotFoundError(msg)
        if current.version != expected_version:
            raise VersionConflictError(
                document_id, expected_version, current.version
            )
        self.update_calls.append((document_id, update))
        updated = current.model_copy(
            update={
                "content": update.content,
                "version": update.version,
                "version_history": update.version_history,
            }
        )
        self._store[document_id] = updated
        return updated

    async def list_candidates(
        self, project_id: str | None = None
    ) -> list[CandidateDocument]:
        return [
            CandidateDocument(id=d.id, title=d.title, content=d.content)
            for d in self._store.values()
            if project_id is None or self._projects.get(d.id) == project_id
        ]

    async def create(
        self,
        title: str,
        content: str,
        *,
        project_id: str | None = None,
    ) -> DocumentSnapshot:
        doc = self.seed(title, content, project_id=project_id)
        self.created.append(doc)
        return doc


class FakeExtractor:
    """Returns the upload's bytes decoded, or a fixed text."""

    def __init__(self, text: str | None = None) -> None:
        self._text = text

    async def extract(self, file: UploadedFile) -> str:
        if self._text is not None:
            return self._text
        return file.data.decode("utf-8")


class FakeAnalysisService:
    """Canned ContentAnalysisService.

    ``response`` may be a dict (returned) or an exception (raised).
    ``delay`` lets cancellation tests catch the call in flight.
    """

    def __init__(
        self,
        response: dict[str, Any] | Exception,
        *,
        delay: float = 0.0,
    ) -> None:
        self._response = response
        self._delay = delay
        self.requests: list[AnalysisRequest] = []

    async def analyze(self, request: AnalysisRequest) -> dict[str, Any]:
        self.requests.append(request)
        if self._delay:
            await asyncio.sleep(self._delay)
        if isinstance(self._response, Exception):
            raise self._response
        return self._response
