from app.schemas.job import (
    AISummaryJobPayload,
    AISummaryJobResult,
    JobCreate,
    JobDetail,
    JobLogRead,
    JobRead,
    TranscriptionJobPayload,
    TranscriptionJobResult,
)

__all__ = [
    "TranscriptionJobPayload",
    "AISummaryJobPayload",
    "TranscriptionJobResult",
    "AISummaryJobResult",
    "JobCreate",
    "JobRead",
    "JobLogRead",
    "JobDetail",
]
