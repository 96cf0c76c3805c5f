from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.job import Job
from app.routers.deps import get_current_user_id
from app.schemas.job import JobCreate, JobDetail, JobLogRead, JobRead, JobStatus
from app.services import jobs as job_queue

router = APIRouter(prefix="/jobs", tags=["jobs"])

USER_JOB_LIST_LIMIT = 50


def _owned_job(db: Session, job_id: str, user_id: str) -> Job:
    job = job_queue.get_job(db, job_id, user_id=user_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job


@router.post("", response_model=JobRead, status_code=status.HTTP_201_CREATED)
def create_job(body: JobCreate, db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)) -> Job:
    try:
        return job_queue.create_job(db, body.job_type, body.payload, user_id, priority=body.priority)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors(include_url=False, include_context=False)
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("", response_model=list[JobRead])
def list_jobs(
    status_filter: JobStatus | None = Query(default=None, alias="status"),
    transcription_id: str | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> list[Job]:
    if transcription_id:
        return job_queue.get_transcription_jobs(db, user_id, transcription_id)
    return job_queue.get_user_jobs(db, user_id, status=status_filter, limit=USER_JOB_LIST_LIMIT)


@router.get("/{job_id}", response_model=JobDetail)
def get_job(
    job_id: str,
    logs: bool = False,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> JobDetail:
    job = _owned_job(db, job_id, user_id)
    entries = job_queue.get_job_logs(db, job_id) if logs else None
    return JobDetail(
        job=JobRead.model_validate(job),
        logs=[JobLogRead.model_validate(entry) for entry in entries] if entries is not None else None,
    )


@router.get("/{job_id}/logs", response_model=list[JobLogRead])
def get_job_logs(job_id: str, db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)) -> list:
    _owned_job(db, job_id, user_id)
    return job_queue.get_job_logs(db, job_id)
