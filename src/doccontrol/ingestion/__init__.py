"""Upload ingestion: validate type and size, extract plain text."""

from doccontrol.ingestion.extractor import TextExtractor, validate_upload
from doccontrol.ingestion.schemas import UploadedFile

__all__ = [
    "TextExtractor",
    "UploadedFile",
    "validate_upload",
]
