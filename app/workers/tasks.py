from app.core.config import get_settings
from app.db.session import session_scope
from app.services import jobs as job_queue
from app.workers.celery_app import celery_app
from app.workers.processor import JobHandlers, run_worker

settings = get_settings()


@celery_app.task(name="app.workers.tasks.process_pending_jobs")
def process_pending_jobs(max_jobs: int | None = None) -> int:
    with session_scope() as db:
        return run_worker(db, JobHandlers(), max_jobs or settings.worker_max_jobs)


@celery_app.task(name="app.workers.tasks.reset_stuck_jobs_task")
def reset_stuck_jobs_task(max_minutes: int | None = None) -> int:
    with session_scope() as db:
        return job_queue.reset_stuck_jobs(db, max_minutes)
