from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.common import TimestampMixin, UUIDPrimaryKeyMixin

JOB_TYPES = ("transcription", "ai_summary")
JOB_STATUSES = ("pending", "processing", "retrying", "completed", "failed")
TERMINAL_STATUSES = frozenset({"completed", "failed"})


class Job(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "job_queue"
    __table_args__ = (Index("ix_job_queue_claim_order", "status", "priority", "created_at"),)

    job_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    logs = relationship("JobLog", back_populates="job", cascade="all, delete-orphan", order_by="JobLog.created_at")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
