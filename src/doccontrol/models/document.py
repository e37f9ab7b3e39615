"""StoredDocument ORM model: managed documents with linear history."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from doccontrol.constants import INITIAL_VERSION
from doccontrol.models.base import Base
from doccontrol.schemas import DocumentSnapshot, VersionHistoryEntry


class StoredDocument(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(500))
    folder_path: Mapped[str] = mapped_column(String(255), default="/")
    content: Mapped[str] = mapped_column(Text, default="")
    version: Mapped[str] = mapped_column(
        String(20), default=INITIAL_VERSION
    )
    version_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        onupdate=lambda: datetime.now(UTC),
    )

    def to_snapshot(self) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=self.id,
            title=self.title,
            content=self.content,
            version=self.version,
            version_history=tuple(
                VersionHistoryEntry.model_validate(e)
                for e in (self.version_history or [])
            ),
        )
