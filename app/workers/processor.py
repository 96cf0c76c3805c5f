import logging
from dataclasses import dataclass, field

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.models.job import Job
from app.schemas.job import (
    AISummaryJobPayload,
    AISummaryJobResult,
    TranscriptionJobPayload,
    TranscriptionJobResult,
    parse_payload,
    parse_result,
)
from app.services import jobs as job_queue
from app.services.transcription import (
    MockTranscriptionProvider,
    TranscriptionProvider,
    run_ai_summary,
    run_transcription,
)

logger = logging.getLogger(__name__)


class UnsupportedJobError(Exception):
    pass


@dataclass(slots=True)
class JobHandlers:
    transcription_provider: TranscriptionProvider = field(default_factory=MockTranscriptionProvider)


def execute_payload(
    payload: TranscriptionJobPayload | AISummaryJobPayload, handlers: JobHandlers
) -> TranscriptionJobResult | AISummaryJobResult:
    if isinstance(payload, TranscriptionJobPayload):
        return run_transcription(payload, handlers.transcription_provider)
    if isinstance(payload, AISummaryJobPayload):
        return run_ai_summary(payload)
    raise UnsupportedJobError(f"Unknown job type: {type(payload).__name__}")


def _failure_result(job: Job, message: str) -> TranscriptionJobResult | AISummaryJobResult:
    return parse_result(
        job.job_type,
        {"success": False, "error": message, "transcriptionId": (job.payload or {}).get("transcriptionId", "")},
    )


def _fail(db: Session, job: Job, message: str) -> Job:
    job = job_queue.update_job_status(db, job.id, "failed", _failure_result(job, message), message)
    job_queue.add_job_log(db, job.id, message, "error")
    return job


def process_job(db: Session, job: Job, handlers: JobHandlers) -> Job:
    """Run one claimed job to a terminal or ``retrying`` state."""
    if job.status == "pending":
        job = job_queue.update_job_status(db, job.id, "processing")

    try:
        payload = parse_payload(job.job_type, job.payload)
    except (ValidationError, ValueError) as exc:
        return _fail(db, job, f"Unknown job type or invalid payload: {job.job_type}: {exc}")

    if job.attempts >= job.max_attempts:
        return _fail(db, job, f"Job failed after {job.attempts} attempts: no attempts left")

    job = job_queue.increment_job_attempts(db, job.id)
    job_queue.add_job_log(
        db,
        job.id,
        f"Starting {job.job_type} job for file {payload.file_id} (attempt {job.attempts}/{job.max_attempts})",
    )

    try:
        result = execute_payload(payload, handlers)
    except UnsupportedJobError as exc:
        return _fail(db, job, str(exc))
    except Exception as exc:  # noqa: BLE001
        message = str(exc) or type(exc).__name__
        logger.exception("job_attempt_failed", extra={"job_id": job.id, "attempt": job.attempts})
        if job.attempts < job.max_attempts:
            job = job_queue.update_job_status(db, job.id, "retrying", error_message=message)
            job_queue.add_job_log(db, job.id, f"Retrying job (attempt {job.attempts}/{job.max_attempts}): {message}", "warning")
            return job
        return _fail(db, job, f"Job failed after {job.attempts} attempts: {message}")

    if result.success:
        job = job_queue.update_job_status(db, job.id, "completed", result)
        job_queue.add_job_log(db, job.id, f"{job.job_type} job completed successfully")
        return job
    job = job_queue.update_job_status(db, job.id, "failed", result, result.error)
    job_queue.add_job_log(db, job.id, f"{job.job_type} job failed: {result.error}", "error")
    return job


def process_next_job(db: Session, handlers: JobHandlers) -> bool:
    job = job_queue.claim_next_job(db)
    if job is None:
        return False
    process_job(db, job, handlers)
    return True


def run_worker(db: Session, handlers: JobHandlers, max_jobs: int) -> int:
    requeued = job_queue.requeue_retrying_jobs(db)
    processed = 0
    while processed < max_jobs and process_next_job(db, handlers):
        processed += 1
    logger.info("worker_run_finished", extra={"processed": processed, "requeued": requeued, "max_jobs": max_jobs})
    return processed
