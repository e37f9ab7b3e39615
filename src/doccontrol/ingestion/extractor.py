"""Validate uploads and extract their plain text."""

from __future__ import annotations

import asyncio
import io
import logging

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from doccontrol.config import Settings
from doccontrol.ingestion.schemas import UploadedFile
from doccontrol.resilience.errors import (
    EmptyUploadError,
    FileTooLargeError,
    UnsupportedFileTypeError,
)

logger = logging.getLogger(__name__)

_TEXT_EXTENSIONS = frozenset({".txt", ".md", ".markdown", ".json"})


def validate_upload(
    file: UploadedFile, settings: Settings | None = None
) -> None:
    """Reject bad type or size before any session state changes."""
    cfg = settings or Settings()

    if file.extension not in cfg.allowed_upload_extensions:
        allowed = ", ".join(cfg.allowed_upload_extensions)
        msg = (
            f"Unsupported file type: {file.name} "
            f"(allowed: {allowed})"
        )
        raise UnsupportedFileTypeError(msg)

    size = max(file.size, len(file.data))
    if size > cfg.max_upload_size_bytes:
        msg = (
            f"File too large: {file.name} "
            f"({size} > {cfg.max_upload_size_bytes} bytes)"
        )
        raise FileTooLargeError(msg)

    if size == 0:
        msg = f"File is empty: {file.name}"
        raise EmptyUploadError(msg)


class TextExtractor:
    """Default extraction collaborator for text, markdown, JSON and PDF."""

    async def extract(self, file: UploadedFile) -> str:
        ext = file.extension
        if ext in _TEXT_EXTENSIONS:
            return file.data.decode("utf-8", errors="replace")
        if ext == ".pdf":
            return await asyncio.to_thread(_extract_pdf, file)
        msg = f"Unsupported file type: {file.name}"
        raise UnsupportedFileTypeError(msg)


def _extract_pdf(file: UploadedFile) -> str:
    try:
        reader = PdfReader(io.BytesIO(file.data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as exc:
        msg = f"Could not read PDF {file.name}: {exc}"
        raise UnsupportedFileTypeError(msg) from exc

    text = "\n\n".join(p.strip() for p in pages if p.strip())
    logger.debug(
        "event=pdf_extracted file=%s pages=%d chars=%d",
        file.name,
        len(pages),
        len(text),
    )
    return text
