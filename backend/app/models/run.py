"""Run ORM model: one (document, model) execution cell of a batch job."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, CreatedAtMixin, IdMixin

RUN_STATUS_PENDING = "pending"
RUN_STATUS_RUNNING = "running"
RUN_STATUS_COMPLETED = "completed"
RUN_STATUS_FAILED = "failed"
RUN_TERMINAL_STATUSES = (RUN_STATUS_COMPLETED, RUN_STATUS_FAILED)


class Run(Base, IdMixin, CreatedAtMixin):
    """Stores the raw response, validation verdict, and cost of one model call."""

    __tablename__ = "runs"

    batch_job_id: Mapped[int] = mapped_column(
        ForeignKey("batch_jobs.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    document_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    model: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default=RUN_STATUS_PENDING, nullable=False)
    raw_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload_json: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    json_valid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attributes_valid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    formats_valid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    validation_passed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    validation_detail_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    guidance_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    execution_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tokens_in: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tokens_out: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost_in: Mapped[float | None] = mapped_column(Float, nullable=True)
    cost_out: Mapped[float | None] = mapped_column(Float, nullable=True)
    null_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    batch_job = relationship("BatchJob", back_populates="runs")

    @property
    def is_terminal(self) -> bool:
        return self.status in RUN_TERMINAL_STATUSES
