from app.models.job import Job
from app.models.job_log import JobLog

__all__ = ["Job", "JobLog"]
