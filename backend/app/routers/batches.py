"""Batch job routes: create, start, poll, and inspect results."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path
from sqlalchemy.orm import Session

from app.db.dependencies import get_db
from app.schemas.analytics import BatchAnalyticsData
from app.schemas.batch import BatchJobCreate, BatchJobCreated, BatchStartResult, BatchStatusRead, RunRead
from app.schemas.common import ApiResponse
from app.schemas.consensus import ConsensusNotApplicable, ConsensusResult
from app.services.batch_analytics import compute_batch_analytics
from app.services.batch_jobs import (
    BatchConfigError,
    BatchNotFoundError,
    DocumentNotFoundError,
    InvalidBatchStateError,
    create_batch_job,
    get_batch_status,
    list_batch_runs,
)
from app.services.batch_orchestrator import run_batch_job, start_batch_job
from app.services.consensus import compute_consensus


router = APIRouter(prefix="/batches")


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (BatchNotFoundError, DocumentNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidBatchStateError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


@router.post("", response_model=ApiResponse[BatchJobCreated], status_code=201)
def create_batch(
    payload: BatchJobCreate,
    db: Session = Depends(get_db),
) -> ApiResponse[BatchJobCreated]:
    """Validate and persist a batch configuration."""

    try:
        batch_job = create_batch_job(db, payload)
    except (DocumentNotFoundError, BatchConfigError) as exc:
        raise _to_http_error(exc) from exc
    return ApiResponse(
        data=BatchJobCreated(
            batch_job_id=batch_job.id,
            status=batch_job.status,
            total_documents=batch_job.total_documents,
            total_runs=batch_job.total_runs,
        )
    )


@router.post("/{batch_job_id}/start", response_model=ApiResponse[BatchStartResult], status_code=202)
def start_batch(
    background_tasks: BackgroundTasks,
    batch_job_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[BatchStartResult]:
    """Expand the run matrix and schedule background processing."""

    try:
        batch_job = start_batch_job(db, batch_job_id)
    except (BatchNotFoundError, InvalidBatchStateError) as exc:
        raise _to_http_error(exc) from exc
    background_tasks.add_task(run_batch_job, batch_job.id)
    return ApiResponse(
        data=BatchStartResult(batch_job_id=batch_job.id, status=batch_job.status, total_runs=batch_job.total_runs)
    )


@router.get("/{batch_job_id}/status", response_model=ApiResponse[BatchStatusRead])
def get_status(
    batch_job_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[BatchStatusRead]:
    """Return progress counters for polling."""

    try:
        status = get_batch_status(db, batch_job_id)
    except BatchNotFoundError as exc:
        raise _to_http_error(exc) from exc
    return ApiResponse(data=status)


@router.get("/{batch_job_id}/runs", response_model=ApiResponse[list[RunRead]])
def get_runs(
    batch_job_id: int = Path(..., ge=1),
    document_id: int | None = None,
    db: Session = Depends(get_db),
) -> ApiResponse[list[RunRead]]:
    """List runs with their raw responses and validation verdicts."""

    try:
        runs = list_batch_runs(db, batch_job_id, document_id=document_id)
    except BatchNotFoundError as exc:
        raise _to_http_error(exc) from exc
    return ApiResponse(data=[RunRead.model_validate(run) for run in runs])


@router.get("/{batch_job_id}/analytics", response_model=ApiResponse[BatchAnalyticsData])
def get_analytics(
    batch_job_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[BatchAnalyticsData]:
    """Return per-model, per-document, and per-attribute analytics."""

    try:
        analytics = compute_batch_analytics(db, batch_job_id)
    except BatchNotFoundError as exc:
        raise _to_http_error(exc) from exc
    return ApiResponse(data=analytics)


@router.get(
    "/{batch_job_id}/documents/{document_id}/consensus",
    response_model=ApiResponse[ConsensusResult | ConsensusNotApplicable],
)
def get_consensus(
    batch_job_id: int = Path(..., ge=1),
    document_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[ConsensusResult | ConsensusNotApplicable]:
    """Return cross-model agreement for one document."""

    try:
        consensus = compute_consensus(db, batch_job_id, document_id)
    except (BatchNotFoundError, DocumentNotFoundError) as exc:
        raise _to_http_error(exc) from exc
    return ApiResponse(data=consensus)
