from celery import Celery

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "productory_stt",
    broker=settings.get_celery_broker_url(),
    backend=settings.get_celery_result_backend(),
    include=["app.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
)

celery_app.conf.beat_schedule = {
    "process-pending-jobs": {
        "task": "app.workers.tasks.process_pending_jobs",
        "schedule": float(settings.worker_poll_interval_seconds),
    },
    "reset-stuck-jobs": {
        "task": "app.workers.tasks.reset_stuck_jobs_task",
        "schedule": 300.0,
    },
}
