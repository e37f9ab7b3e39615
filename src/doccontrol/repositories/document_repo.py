"""SQL implementation of DocumentStore."""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from doccontrol.constants import INITIAL_VERSION, MISC_FOLDER
from doccontrol.models.document import StoredDocument
from doccontrol.resilience.errors import (
    DocumentNotFoundError,
    VersionConflictError,
)
from doccontrol.schemas import (
    CandidateDocument,
    DocumentSnapshot,
    DocumentUpdate,
)


class SqlDocumentStore:
    """Document store that owns its own sessions.

    Writes happen from the apply phase, concurrently across documents,
    so each operation opens a short-lived session from the factory.
    ``update`` is a compare-and-set on ``version``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get(self, document_id: str) -> DocumentSnapshot:
        async with self._session_factory() as session:
            doc = await session.get(StoredDocument, document_id)
            if doc is None:
                msg = f"Document not found: {document_id}"
                raise DocumentNotFoundError(msg)
            return doc.to_snapshot()

    async def update(
        self,
        document_id: str,
        update: DocumentUpdate,
        *,
        expected_version: str,
    ) -> DocumentSnapshot:
        history = [
            e.model_dump(mode="json", by_alias=True)
            for e in update.version_history
        ]
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(StoredDocument)
                .where(
                    StoredDocument.id == document_id,
                    StoredDocument.version == expected_version,
                )
                .values(
                    content=update.content,
                    version=update.version,
                    version_history=history,
                    updated_at=datetime.now(UTC),
                )
            )
            if result.rowcount == 0:  # type: ignore[attr-defined]
                current = await session.get(StoredDocument, document_id)
                if current is None:
                    msg = f"Document not found: {document_id}"
                    raise DocumentNotFoundError(msg)
                raise VersionConflictError(
                    document_id, expected_version, current.version
                )
        return await self.get(document_id)

    async def list_candidates(
        self, project_id: str | None = None
    ) -> list[CandidateDocument]:
        stmt = select(StoredDocument).order_by(StoredDocument.title)
        if project_id is not None:
            stmt = stmt.where(StoredDocument.project_id == project_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                CandidateDocument(
                    id=d.id, title=d.title, content=d.content
                )
                for d in result.scalars().all()
            ]

    async def create(
        self,
        title: str,
        content: str,
        *,
        project_id: str | None = None,
        folder_path: str = MISC_FOLDER,
    ) -> DocumentSnapshot:
        doc = StoredDocument(
            title=title,
            content=content,
            project_id=project_id,
            folder_path=folder_path,
            version=INITIAL_VERSION,
            version_history=[],
        )
        async with self._session_factory() as session, session.begin():
            session.add(doc)
            await session.flush()
            snapshot = doc.to_snapshot()
        return snapshot
