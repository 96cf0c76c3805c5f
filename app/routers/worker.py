from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.job import Job
from app.routers.deps import require_worker
from app.schemas.job import JobRead, ResetStuckRequest, WorkerRunRequest
from app.services import jobs as job_queue
from app.workers.processor import JobHandlers, run_worker

router = APIRouter(prefix="/worker", tags=["worker"], dependencies=[Depends(require_worker)])


@router.post("/run")
def run(body: WorkerRunRequest, db: Session = Depends(get_db)) -> dict:
    return {"processed": run_worker(db, JobHandlers(), body.max_jobs)}


@router.post("/reset-stuck")
def reset_stuck(body: ResetStuckRequest, db: Session = Depends(get_db)) -> dict:
    return {"reset_count": job_queue.reset_stuck_jobs(db, body.max_minutes)}


@router.post("/jobs/{job_id}/reset", response_model=JobRead)
def reset_job(job_id: str, db: Session = Depends(get_db)) -> Job:
    try:
        job = job_queue.requeue_job(db, job_id, "Job was manually reset")
    except job_queue.JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found") from exc
    except job_queue.InvalidJobTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    job_queue.add_job_log(db, job_id, "Job was manually reset to pending", "warning")
    return job
