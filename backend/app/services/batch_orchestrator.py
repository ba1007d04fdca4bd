"""Batch orchestration: start, fan-out, and progress accounting.

The orchestrator thread is the only database writer for a running batch.
Worker threads only call the completion service and validate; each finished
run is written and committed as soon as it comes back, so pollers see the
counters grow while other runs are still in flight.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from time import perf_counter

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db.session import SessionLocal
from app.models.base import utc_now
from app.models.batch_job import (
    BATCH_STATUS_COMPLETED,
    BATCH_STATUS_FAILED,
    BATCH_STATUS_PENDING,
    BATCH_STATUS_PROCESSING,
    BatchJob,
)
from app.models.run import RUN_STATUS_PENDING, RUN_STATUS_RUNNING, Run
from app.services.batch_jobs import DocumentNotFoundError, InvalidBatchStateError, get_batch_job
from app.services.documents import get_documents_by_id
from app.services.run_dispatcher import (
    RunDispatcher,
    RunResult,
    apply_run_result,
    get_default_dispatcher,
    unexpected_failure_result,
)

logger = logging.getLogger(__name__)


def start_batch_job(db: Session, batch_job_id: int) -> BatchJob:
    """Move a pending job to `processing` and expand its run matrix.

    Runs are created documents-outer, models-inner. The status change is a
    conditional update, so a second concurrent start for the same job fails.
    """

    batch_job = get_batch_job(db, batch_job_id)
    if batch_job.status != BATCH_STATUS_PENDING:
        raise InvalidBatchStateError(f"Batch job {batch_job_id} is {batch_job.status}, expected pending")

    claimed = db.execute(
        update(BatchJob)
        .where(BatchJob.id == batch_job_id, BatchJob.status == BATCH_STATUS_PENDING)
        .values(status=BATCH_STATUS_PROCESSING, error_message=None, updated_at=utc_now())
    )
    if claimed.rowcount != 1:
        db.rollback()
        raise InvalidBatchStateError(f"Batch job {batch_job_id} was already started")

    runs = [
        Run(batch_job_id=batch_job_id, document_id=document_id, model=model, status=RUN_STATUS_PENDING)
        for document_id in batch_job.document_ids_json
        for model in batch_job.models_json
    ]
    db.add_all(runs)
    db.commit()
    db.refresh(batch_job)
    logger.info(
        "batch.started batch_job_id=%s total_runs=%d total_documents=%d",
        batch_job_id,
        len(runs),
        batch_job.total_documents,
    )
    return batch_job


def run_batch_job(
    batch_job_id: int,
    *,
    session_factory: Callable[[], Session] | None = None,
    dispatcher: RunDispatcher | None = None,
    max_concurrency: int | None = None,
) -> None:
    """Process every pending run of a started job with bounded concurrency."""

    factory = session_factory or SessionLocal
    total_started = perf_counter()
    db = factory()
    try:
        batch_job = get_batch_job(db, batch_job_id)
        if batch_job.status != BATCH_STATUS_PROCESSING:
            logger.warning(
                "batch.run_skipped batch_job_id=%s status=%s",
                batch_job_id,
                batch_job.status,
            )
            return

        if dispatcher is None:
            dispatcher = get_default_dispatcher(db, list(batch_job.models_json))
        limit = max(1, int(max_concurrency or get_settings().batch_max_concurrency))
        _process_runs(db, batch_job, dispatcher, limit)

        batch_job.status = BATCH_STATUS_COMPLETED
        batch_job.current_document_id = None
        db.commit()
        logger.info(
            (
                "batch.completed batch_job_id=%s successful_runs=%d failed_runs=%d "
                "completed_documents=%d total_ms=%.2f"
            ),
            batch_job_id,
            batch_job.successful_runs,
            batch_job.failed_runs,
            batch_job.completed_documents,
            (perf_counter() - total_started) * 1000.0,
        )
    except Exception as exc:
        logger.exception(
            "batch.failed batch_job_id=%s elapsed_ms=%.2f",
            batch_job_id,
            (perf_counter() - total_started) * 1000.0,
        )
        _mark_batch_failed(db, batch_job_id, str(exc))
        raise
    finally:
        db.close()


def find_stale_batch_jobs(
    db: Session,
    *,
    older_than_seconds: int | None = None,
    now: datetime | None = None,
) -> list[BatchJob]:
    """Return `processing` jobs that have not been updated within the threshold.

    Inspection only; stale jobs are not resumed or failed here.
    """

    threshold = older_than_seconds if older_than_seconds is not None else get_settings().stale_batch_after_seconds
    cutoff = (now or utc_now()) - timedelta(seconds=threshold)
    cutoff = _as_utc(cutoff)
    candidates = db.scalars(
        select(BatchJob).where(BatchJob.status == BATCH_STATUS_PROCESSING).order_by(BatchJob.id.asc())
    ).all()
    return [batch_job for batch_job in candidates if _as_utc(batch_job.updated_at) < cutoff]


def _process_runs(db: Session, batch_job: BatchJob, dispatcher: RunDispatcher, limit: int) -> None:
    batch_job_id = batch_job.id
    all_runs = list(db.scalars(select(Run).where(Run.batch_job_id == batch_job_id).order_by(Run.id.asc())).all())
    remaining_by_document = Counter(run.document_id for run in all_runs if not run.is_terminal)
    queue = deque(run for run in all_runs if run.status == RUN_STATUS_PENDING)
    documents = get_documents_by_id(db, list(batch_job.document_ids_json))

    system_prompt = batch_job.system_prompt
    user_prompt = batch_job.user_prompt
    schema = dict(batch_job.validation_schema_json or {})
    output_shape = batch_job.output_shape

    in_flight: dict[Future[RunResult], Run] = {}
    with ThreadPoolExecutor(max_workers=limit, thread_name_prefix=f"batch-{batch_job_id}") as executor:
        while queue or in_flight:
            while queue and len(in_flight) < limit:
                run = queue.popleft()
                document = documents.get(run.document_id)
                if document is None:
                    missing = DocumentNotFoundError(f"Document {run.document_id} not found")
                    _record_completion(
                        db,
                        batch_job,
                        run,
                        unexpected_failure_result(run.document_id, run.model, missing),
                        remaining_by_document,
                    )
                    continue
                run.status = RUN_STATUS_RUNNING
                batch_job.current_document_id = run.document_id
                db.commit()
                future = executor.submit(
                    dispatcher.execute,
                    document_id=run.document_id,
                    document_text=document.full_text,
                    model=run.model,
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    schema=schema,
                    output_shape=output_shape,
                )
                in_flight[future] = run

            if not in_flight:
                continue
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                run = in_flight.pop(future)
                try:
                    result = future.result()
                except Exception as exc:
                    logger.exception(
                        "batch.run_crashed batch_job_id=%s run_id=%s model=%s",
                        batch_job_id,
                        run.id,
                        run.model,
                    )
                    result = unexpected_failure_result(run.document_id, run.model, exc)
                _record_completion(db, batch_job, run, result, remaining_by_document)


def _record_completion(
    db: Session,
    batch_job: BatchJob,
    run: Run,
    result: RunResult,
    remaining_by_document: Counter,
) -> None:
    apply_run_result(run, result)
    if result.validation_passed:
        batch_job.successful_runs += 1
    else:
        batch_job.failed_runs += 1
    remaining_by_document[run.document_id] -= 1
    if remaining_by_document[run.document_id] == 0:
        batch_job.completed_documents += 1
    db.commit()
    logger.info(
        "batch.run_completed batch_job_id=%s run_id=%s model=%s outcome=%s elapsed_ms=%s",
        batch_job.id,
        run.id,
        run.model,
        "passed" if result.validation_passed else result.status,
        result.execution_time_ms,
    )


def _mark_batch_failed(db: Session, batch_job_id: int, message: str) -> None:
    try:
        db.rollback()
        db.execute(
            update(BatchJob)
            .where(BatchJob.id == batch_job_id, BatchJob.status == BATCH_STATUS_PROCESSING)
            .values(status=BATCH_STATUS_FAILED, error_message=message[:2000], updated_at=utc_now())
        )
        db.commit()
    except SQLAlchemyError:
        logger.exception("batch.mark_failed_error batch_job_id=%s", batch_job_id)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
