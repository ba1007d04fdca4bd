"""Batch job ORM model."""

from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, CreatedAtMixin, IdMixin, UpdatedAtMixin

BATCH_STATUS_PENDING = "pending"
BATCH_STATUS_PROCESSING = "processing"
BATCH_STATUS_COMPLETED = "completed"
BATCH_STATUS_FAILED = "failed"

OUTPUT_SHAPE_SINGLE_OBJECT = "single-object"
OUTPUT_SHAPE_RECORD_STREAM = "record-stream"
OUTPUT_SHAPES = (OUTPUT_SHAPE_SINGLE_OBJECT, OUTPUT_SHAPE_RECORD_STREAM)


class BatchJob(Base, IdMixin, CreatedAtMixin, UpdatedAtMixin):
    """One documents x models extraction campaign and its progress counters."""

    __tablename__ = "batch_jobs"

    owner: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    document_ids_json: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    models_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    user_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    output_shape: Mapped[str] = mapped_column(String(32), default=OUTPUT_SHAPE_SINGLE_OBJECT, nullable=False)
    validation_schema_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default=BATCH_STATUS_PENDING, index=True, nullable=False)
    total_documents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_documents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_runs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_runs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_document_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    runs = relationship("Run", back_populates="batch_job", cascade="all, delete-orphan", order_by="Run.id")

    @property
    def total_runs(self) -> int:
        return self.total_documents * len(self.models_json or [])

    @property
    def completed_runs(self) -> int:
        return self.successful_runs + self.failed_runs
