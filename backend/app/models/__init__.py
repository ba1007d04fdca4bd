"""ORM models package exports."""

from app.models.batch_job import BatchJob
from app.models.document import Document
from app.models.language_model import LanguageModel
from app.models.run import Run

__all__ = [
    "BatchJob",
    "Document",
    "LanguageModel",
    "Run",
]
