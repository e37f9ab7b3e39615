"""Tests for upload validation and text extraction."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from pypdf import PdfWriter

from doccontrol.config import Settings
from doccontrol.ingestion import TextExtractor, UploadedFile, validate_upload
from doccontrol.resilience.errors import (
    EmptyUploadError,
    FileTooLargeError,
    UnsupportedFileTypeError,
)


def _file(name: str, data: bytes, size: int | None = None) -> UploadedFile:
    return UploadedFile(
        name=name, data=data, size=len(data) if size is None else size
    )


def _blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


class TestValidateUpload:
    def test_accepts_markdown(self) -> None:
        validate_upload(_file("notes.MD", b"# hi"), Settings())

    def test_rejects_unknown_extension(self) -> None:
        with pytest.raises(UnsupportedFileTypeError, match="payload.exe"):
            validate_upload(_file("payload.exe", b"MZ"), Settings())

    def test_type_checked_before_size(self) -> None:
        big = _file("payload.exe", b"x", size=10**9)
        with pytest.raises(UnsupportedFileTypeError):
            validate_upload(big, Settings())

    def test_declared_size_over_limit(self) -> None:
        settings = Settings(max_upload_size_bytes=10)
        with pytest.raises(FileTooLargeError):
            validate_upload(_file("a.txt", b"x", size=11), settings)

    def test_actual_size_over_limit(self) -> None:
        settings = Settings(max_upload_size_bytes=10)
        with pytest.raises(FileTooLargeError):
            validate_upload(_file("a.txt", b"x" * 11, size=1), settings)

    def test_empty_file(self) -> None:
        with pytest.raises(EmptyUploadError):
            validate_upload(_file("a.txt", b""), Settings())

    def test_extension_list_is_configurable(self) -> None:
        settings = Settings(allowed_upload_extensions=[".txt"])
        with pytest.raises(UnsupportedFileTypeError):
            validate_upload(_file("a.md", b"x"), settings)


class TestTextExtractor:
    async def test_text_is_decoded(self) -> None:
        text = await TextExtractor().extract(
            _file("a.txt", "Budget: €10k".encode())
        )
        assert text == "Budget: €10k"

    async def test_invalid_utf8_is_replaced(self) -> None:
        text = await TextExtractor().extract(_file("a.md", b"ok \xff"))
        assert text.startswith("ok ")

    async def test_blank_pdf_yields_empty_text(self) -> None:
        text = await TextExtractor().extract(_file("a.pdf", _blank_pdf()))
        assert text == ""

    async def test_corrupt_pdf_is_unsupported(self) -> None:
        with pytest.raises(UnsupportedFileTypeError, match="Could not read"):
            await TextExtractor().extract(_file("a.pdf", b"not a pdf"))

    async def test_unknown_extension(self) -> None:
        with pytest.raises(UnsupportedFileTypeError):
            await TextExtractor().extract(_file("a.docx", b"PK"))


def test_from_path(tmp_path: Path) -> None:
    path = tmp_path / "update.md"
    path.write_text("rollout March 1")
    uploaded = UploadedFile.from_path(path)
    assert uploaded.name == "update.md"
    assert uploaded.size == len("rollout March 1")
    assert uploaded.extension == ".md"
