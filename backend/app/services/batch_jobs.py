"""Batch job creation and status queries."""

from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.batch_job import BATCH_STATUS_PENDING, OUTPUT_SHAPES, BatchJob
from app.models.run import Run
from app.schemas.batch import BatchJobCreate, BatchStatusRead
from app.services.documents import get_documents_by_id
from app.validation import is_valid_json_schema

logger = logging.getLogger(__name__)

_MODEL_ID_RE = re.compile(r"^[^/\s]+/[^/\s]+$")


class BatchNotFoundError(LookupError):
    """Raised when a batch job ID does not exist."""


class DocumentNotFoundError(LookupError):
    """Raised when a referenced document does not exist."""


class InvalidBatchStateError(RuntimeError):
    """Raised when a batch job is not in the state an operation requires."""


class BatchConfigError(ValueError):
    """Raised when a batch configuration is rejected before persistence."""


def create_batch_job(db: Session, payload: BatchJobCreate) -> BatchJob:
    """Validate a batch configuration and persist it in `pending` state."""

    document_ids = _ordered_unique(payload.document_ids)
    models = _ordered_unique(model.strip() for model in payload.models)

    invalid_models = [model for model in models if not _MODEL_ID_RE.match(model)]
    if invalid_models:
        raise BatchConfigError(
            f"Invalid model identifiers (expected 'provider/name'): {', '.join(invalid_models)}"
        )
    if payload.output_shape not in OUTPUT_SHAPES:
        raise BatchConfigError(f"Unsupported output shape: {payload.output_shape}")
    if not is_valid_json_schema(payload.validation_schema):
        raise BatchConfigError("validation_schema is not a valid JSON Schema document")

    documents = get_documents_by_id(db, document_ids)
    missing = [document_id for document_id in document_ids if document_id not in documents]
    if missing:
        raise DocumentNotFoundError(f"Documents not found: {', '.join(str(d) for d in missing)}")
    foreign = [document_id for document_id in document_ids if documents[document_id].owner != payload.owner]
    if foreign:
        raise BatchConfigError(f"Documents do not belong to {payload.owner}: {', '.join(str(d) for d in foreign)}")

    batch_job = BatchJob(
        owner=payload.owner,
        name=payload.name.strip(),
        document_ids_json=document_ids,
        models_json=models,
        system_prompt=payload.system_prompt,
        user_prompt=payload.user_prompt,
        output_shape=payload.output_shape,
        validation_schema_json=payload.validation_schema,
        status=BATCH_STATUS_PENDING,
        total_documents=len(document_ids),
    )
    db.add(batch_job)
    db.commit()
    db.refresh(batch_job)
    logger.info(
        "batch.created batch_job_id=%s documents=%d models=%d output_shape=%s",
        batch_job.id,
        len(document_ids),
        len(models),
        batch_job.output_shape,
    )
    return batch_job


def get_batch_job(db: Session, batch_job_id: int) -> BatchJob:
    """Return a batch job or raise `BatchNotFoundError`."""

    batch_job = db.get(BatchJob, batch_job_id)
    if batch_job is None:
        raise BatchNotFoundError(f"Batch job {batch_job_id} not found")
    return batch_job


def get_batch_status(db: Session, batch_job_id: int) -> BatchStatusRead:
    """Return the pollable progress counters of a batch job."""

    batch_job = get_batch_job(db, batch_job_id)
    return BatchStatusRead(
        batch_job_id=batch_job.id,
        name=batch_job.name,
        status=batch_job.status,
        total_documents=batch_job.total_documents,
        completed_documents=batch_job.completed_documents,
        total_runs=batch_job.total_runs,
        successful_runs=batch_job.successful_runs,
        failed_runs=batch_job.failed_runs,
        current_document_id=batch_job.current_document_id,
        error_message=batch_job.error_message,
        created_at=batch_job.created_at,
        updated_at=batch_job.updated_at,
    )


def list_batch_runs(db: Session, batch_job_id: int, document_id: int | None = None) -> list[Run]:
    """List runs of a batch in matrix order, optionally for one document."""

    get_batch_job(db, batch_job_id)
    stmt = select(Run).where(Run.batch_job_id == batch_job_id)
    if document_id is not None:
        stmt = stmt.where(Run.document_id == document_id)
    return list(db.scalars(stmt.order_by(Run.id.asc())).all())


def _ordered_unique(values) -> list:
    seen = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result
