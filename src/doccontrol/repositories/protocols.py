"""Protocol-based collaborator interfaces.

SQL and LLM implementations satisfy these protocols structurally (no
inheritance). Test doubles can be plain classes or mocks matching the
same signature.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from doccontrol.ingestion.schemas import UploadedFile
from doccontrol.schemas import (
    CandidateDocument,
    DocumentSnapshot,
    DocumentUpdate,
)


@dataclass(frozen=True)
class AnalysisRequest:
    """Everything the analysis service sees for one run."""

    uploaded_text: str
    file_name: str
    candidates: list[CandidateDocument]


class DocumentStore(Protocol):
    async def get(self, document_id: str) -> DocumentSnapshot: ...
    async def update(
        self,
        document_id: str,
        update: DocumentUpdate,
        *,
        expected_version: str,
    ) -> DocumentSnapshot: ...
    async def list_candidates(
        self, project_id: str | None = None
    ) -> list[CandidateDocument]: ...
    async def create(
        self,
        title: str,
        content: str,
        *,
        project_id: str | None = None,
    ) -> DocumentSnapshot: ...


class ContentExtractor(Protocol):
    async def extract(self, file: UploadedFile) -> str: ...


class ContentAnalysisService(Protocol):
    """Returns the raw, untyped response; the adapter validates it."""

    async def analyze(self, request: AnalysisRequest) -> dict[str, Any]: ...
