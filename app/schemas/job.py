from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

JobType = Literal["transcription", "ai_summary"]
JobStatus = Literal["pending", "processing", "retrying", "completed", "failed"]
LogLevel = Literal["info", "warning", "error"]


class StoredModel(BaseModel):
    """Stored payloads and results use camelCase keys; snake_case is accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OptionsModel(BaseModel):
    # provider options keep their snake_case wire names
    model_config = ConfigDict(alias_generator=AliasGenerator(validation_alias=to_camel), populate_by_name=True)


class TranscriptionOptions(OptionsModel):
    language: str | None = None
    diarize: bool = False
    num_speakers: int | None = Field(default=None, ge=1, le=32)
    timestamps_granularity: Literal["word", "character", "none"] = "word"
    tag_audio_events: bool = False


class SummaryOptions(OptionsModel):
    model: str | None = None
    max_length: int | None = Field(default=None, ge=1)


class TranscriptionJobPayload(StoredModel):
    kind: Literal["transcription"] = "transcription"
    file_id: str = Field(min_length=1)
    transcription_id: str = Field(min_length=1)
    options: TranscriptionOptions = Field(default_factory=TranscriptionOptions)


class AISummaryJobPayload(StoredModel):
    kind: Literal["ai_summary"] = "ai_summary"
    file_id: str = Field(min_length=1)
    transcription_id: str = Field(min_length=1)
    options: SummaryOptions | None = None


class TranscriptionJobResult(StoredModel):
    kind: Literal["transcription"] = "transcription"
    success: bool
    transcription_id: str
    error: str | None = None
    duration: float | None = None
    word_count: int | None = None


class AISummaryJobResult(StoredModel):
    kind: Literal["ai_summary"] = "ai_summary"
    success: bool
    summary_id: str | None = None
    error: str | None = None


JobPayload = Annotated[Union[TranscriptionJobPayload, AISummaryJobPayload], Field(discriminator="kind")]
JobResult = Annotated[Union[TranscriptionJobResult, AISummaryJobResult], Field(discriminator="kind")]

_payload_adapter: TypeAdapter = TypeAdapter(JobPayload)
_result_adapter: TypeAdapter = TypeAdapter(JobResult)


def parse_payload(job_type: str, data: Any) -> TranscriptionJobPayload | AISummaryJobPayload:
    """Validate a payload for ``job_type``; mappings without ``kind`` take it from the job type."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    payload = _payload_adapter.validate_python({"kind": job_type, **dict(data or {})})
    if payload.kind != job_type:
        raise ValueError(f"Payload kind {payload.kind!r} does not match job type {job_type!r}")
    return payload


def dump_stored(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def parse_result(job_type: str, data: Any) -> TranscriptionJobResult | AISummaryJobResult:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    result = _result_adapter.validate_python({"kind": job_type, **dict(data or {})})
    if result.kind != job_type:
        raise ValueError(f"Result kind {result.kind!r} does not match job type {job_type!r}")
    return result


class JobCreate(BaseModel):
    job_type: JobType
    payload: dict[str, Any]
    priority: int = 0


class JobRead(BaseModel):
    id: str
    job_type: JobType
    status: JobStatus
    priority: int
    payload: dict[str, Any]
    result: dict[str, Any] | None
    error_message: str | None
    attempts: int
    max_attempts: int
    user_id: str
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class JobLogRead(BaseModel):
    id: int
    job_id: str
    message: str
    level: LogLevel
    created_at: datetime

    model_config = {"from_attributes": True}


class JobDetail(BaseModel):
    job: JobRead
    logs: list[JobLogRead] | None = None


class WorkerRunRequest(BaseModel):
    max_jobs: int = Field(default=1, ge=1, le=100)


class ResetStuckRequest(BaseModel):
    max_minutes: int | None = Field(default=None, ge=1)
