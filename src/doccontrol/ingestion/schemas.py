"""Pydantic models for upload ingestion."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class UploadedFile(BaseModel):
    """A file handed to the session before extraction.

    ``size`` is the declared size; it is validated against the
    configured limit before any bytes are read.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    data: bytes = Field(repr=False)
    size: int = Field(ge=0)
    content_type: str = ""

    @property
    def extension(self) -> str:
        return Path(self.name).suffix.lower()

    @classmethod
    def from_path(cls, path: str | Path) -> UploadedFile:
        p = Path(path)
        data = p.read_bytes()
        return cls(name=p.name, data=data, size=len(data))
