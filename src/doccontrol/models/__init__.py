"""SQLAlchemy ORM models."""

from doccontrol.models.base import Base
from doccontrol.models.document import StoredDocument

__all__ = [
    "Base",
    "StoredDocument",
]
