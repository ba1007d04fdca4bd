"""SQLAlchemy metadata registry import for Alembic."""

from app.models import BatchJob, Document, LanguageModel, Run
from app.models.base import Base

__all__ = ["Base", "BatchJob", "Document", "LanguageModel", "Run"]
