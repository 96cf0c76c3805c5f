"""
Job queue accessors over the ``job_queue`` and ``job_logs`` tables.

Every function takes the caller's session and commits its own write. Absent
rows come back as ``None`` (or an empty list); every other failure propagates.
``update_job_status`` is the only function that moves a job between states.
"""

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.common import utcnow
from app.models.job import TERMINAL_STATUSES, Job
from app.models.job_log import LOG_LEVELS, JobLog
from app.schemas.job import dump_stored, parse_payload, parse_result

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"pending", "processing", "failed"}),
    "processing": frozenset({"processing", "completed", "failed", "retrying", "pending"}),
    "retrying": frozenset({"retrying", "pending", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
}

CLAIM_CANDIDATES = 5


class JobNotFoundError(LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidJobTransitionError(ValueError):
    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(f"Job {job_id} cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


def _pending_order():
    return Job.priority.desc(), Job.created_at.asc(), Job.id.asc()


def _require_job(db: Session, job_id: str) -> Job:
    job = db.get(Job, job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


# Create


def create_job(
    db: Session,
    job_type: str,
    payload: BaseModel | Mapping[str, Any],
    user_id: str,
    priority: int = 0,
    max_attempts: int | None = None,
) -> Job:
    typed = parse_payload(job_type, payload)
    job = Job(
        job_type=job_type,
        status="pending",
        priority=priority,
        payload=dump_stored(typed),
        attempts=0,
        max_attempts=max_attempts or get_settings().job_max_attempts,
        user_id=user_id,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("job_created", extra={"job_id": job.id, "job_type": job_type, "priority": priority})
    return job


# Read


def get_job(db: Session, job_id: str, user_id: str | None = None) -> Job | None:
    stmt = select(Job).where(Job.id == job_id)
    if user_id is not None:
        stmt = stmt.where(Job.user_id == user_id)
    return db.scalar(stmt)


def get_user_jobs(
    db: Session,
    user_id: str,
    status: str | None = None,
    job_type: str | None = None,
    limit: int | None = None,
) -> list[Job]:
    stmt = select(Job).where(Job.user_id == user_id)
    if status is not None:
        stmt = stmt.where(Job.status == status)
    if job_type is not None:
        stmt = stmt.where(Job.job_type == job_type)
    stmt = stmt.order_by(Job.created_at.desc(), Job.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.scalars(stmt).all())


def get_transcription_jobs(db: Session, user_id: str, transcription_id: str) -> list[Job]:
    # JSON path filters differ between SQLite and PostgreSQL, so match in Python.
    jobs = get_user_jobs(db, user_id, job_type="transcription")
    return [job for job in jobs if (job.payload or {}).get("transcriptionId") == transcription_id]


def get_next_pending_job(db: Session) -> Job | None:
    """Peek at the job a worker would claim next. Scans every user's jobs."""
    return db.scalar(select(Job).where(Job.status == "pending").order_by(*_pending_order()).limit(1))


def get_job_logs(db: Session, job_id: str) -> list[JobLog]:
    stmt = select(JobLog).where(JobLog.job_id == job_id).order_by(JobLog.created_at.asc(), JobLog.id.asc())
    return list(db.scalars(stmt).all())


# Update


def update_job_status(
    db: Session,
    job_id: str,
    status: str,
    result: BaseModel | Mapping[str, Any] | None = None,
    error_message: str | None = None,
) -> Job:
    job = _require_job(db, job_id)
    if result is not None and status not in TERMINAL_STATUSES:
        raise ValueError(f"A result can only be stored on a completed or failed job, not {status}")
    if status not in ALLOWED_TRANSITIONS.get(job.status, frozenset()):
        raise InvalidJobTransitionError(job_id, job.status, status)

    now = utcnow()
    previous = job.status
    job.status = status
    job.updated_at = now
    if status == "processing" and job.started_at is None:
        job.started_at = now
    if status in TERMINAL_STATUSES and job.completed_at is None:
        job.completed_at = now
    if status == "pending":
        # a re-queued job starts over; only the reason for the re-queue is kept
        job.result = None
        job.error_message = error_message
    elif status == "completed":
        job.error_message = error_message
    elif error_message:
        job.error_message = error_message
    if result is not None:
        job.result = dump_stored(parse_result(job.job_type, result))
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("job_status_updated", extra={"job_id": job_id, "from_status": previous, "to_status": status})
    return job


def claim_next_job(db: Session) -> Job | None:
    """
    Atomically take the next pending job and mark it ``processing``.

    Candidates are read in claim order (row-locked with SKIP LOCKED where the
    database supports it) and flipped with a conditional UPDATE, so two
    workers can never both win the same job.
    """
    stmt = (
        select(Job.id)
        .where(Job.status == "pending")
        .order_by(*_pending_order())
        .limit(CLAIM_CANDIDATES)
        .with_for_update(skip_locked=True)
    )
    while True:
        candidate_ids = list(db.scalars(stmt).all())
        if not candidate_ids:
            db.rollback()
            return None
        for job_id in candidate_ids:
            now = utcnow()
            claimed = db.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == "pending")
                .values(status="processing", started_at=func.coalesce(Job.started_at, now), updated_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if claimed.rowcount == 1:
                job = _require_job(db, job_id)
                db.refresh(job)
                logger.info("job_claimed", extra={"job_id": job_id, "job_type": job.job_type})
                return job
            logger.debug("job_claim_lost", extra={"job_id": job_id})


def increment_job_attempts(db: Session, job_id: str) -> Job:
    bumped = db.execute(
        update(Job)
        .where(Job.id == job_id)
        .values(attempts=Job.attempts + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if bumped.rowcount != 1:
        raise JobNotFoundError(job_id)
    job = _require_job(db, job_id)
    db.refresh(job)
    return job


def requeue_job(db: Session, job_id: str, reason: str | None = None) -> Job:
    job = _require_job(db, job_id)
    if job.status not in {"processing", "retrying"}:
        raise InvalidJobTransitionError(job_id, job.status, "pending")
    return update_job_status(db, job_id, "pending", error_message=reason)


def reset_stuck_jobs(db: Session, max_minutes: int | None = None) -> int:
    """Re-queue ``processing`` jobs untouched for ``max_minutes``; fail those out of attempts."""
    minutes = max_minutes or get_settings().job_stuck_after_minutes
    cutoff = utcnow() - timedelta(minutes=minutes)
    stuck_ids = list(db.scalars(select(Job.id).where(Job.status == "processing", Job.updated_at < cutoff)).all())
    touched = 0
    for job_id in stuck_ids:
        reason = f"Job was stuck in processing state for more than {minutes} minutes and was automatically reset"
        job = increment_job_attempts(db, job_id)
        if job.attempts >= job.max_attempts:
            update_job_status(db, job_id, "failed", error_message=f"{reason}; no attempts left")
            add_job_log(db, job_id, f"Job failed after {job.attempts} attempts (stuck in processing)", "error")
        else:
            requeue_job(db, job_id, reason)
            add_job_log(db, job_id, reason, "warning")
        touched += 1
    if touched:
        logger.warning("stuck_jobs_reset", extra={"count": touched, "max_minutes": minutes})
    return touched


def requeue_retrying_jobs(db: Session, delay_seconds: int | None = None) -> int:
    delay = get_settings().job_retry_delay_seconds if delay_seconds is None else delay_seconds
    cutoff = utcnow() - timedelta(seconds=delay)
    due_ids = list(db.scalars(select(Job.id).where(Job.status == "retrying", Job.updated_at <= cutoff)).all())
    for job_id in due_ids:
        requeue_job(db, job_id)
        add_job_log(db, job_id, "Job re-queued for another attempt")
    return len(due_ids)


# Logs


def add_job_log(db: Session, job_id: str, message: str, level: str = "info") -> bool:
    """
    Append one audit line to a job.

    Returns ``False`` instead of raising when the write fails; a lost log line
    must not abort the operation it describes.
    """
    if level not in LOG_LEVELS:
        level = "info"
    try:
        db.add(JobLog(job_id=job_id, message=message, level=level))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("job_log_write_failed", extra={"job_id": job_id, "level": level, "error": str(exc)})
        return False
    return True
