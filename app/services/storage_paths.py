"""
Canonical object-store paths and URLs for audio files.

Every upload, rename, delete and playback code path builds its storage keys
through ``StoragePathUtil`` so that keys always look like
``{audio_path_prefix}/{user_id}/{file_name}``.
"""

import logging
import re
import secrets
import string
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

from app.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_MESSAGES = {
    "PATH_CONSTRUCTION_ERROR": "There was an issue constructing the file path. Please try again or contact support.",
    "INVALID_PATH_ERROR": "The file path is invalid or malformed. Please check the path and try again.",
    "CONFIGURATION_ERROR": "There is a configuration issue with the storage system. Please contact support.",
    "MISSING_USER_ID": "User ID is required for this operation. Please ensure you are logged in.",
    "MISSING_FILE_NAME": "File name is required for this operation. Please provide a valid file name.",
    "INVALID_BUCKET_NAME": "The specified bucket name is invalid. Please use a valid bucket name.",
    "MISSING_BASE_URL": "The storage base URL is not configured. Please check your environment configuration.",
}
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred while accessing storage."

RANDOM_SUFFIX_LENGTH = 6
_RANDOM_ALPHABET = string.ascii_lowercase + string.digits
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9\-_]")


class StorageError(Exception):
    default_code = "STORAGE_ERROR"

    def __init__(self, message: str, code: str | None = None, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}


class PathConstructionError(StorageError):
    default_code = "PATH_CONSTRUCTION_ERROR"


class InvalidPathError(StorageError):
    default_code = "INVALID_PATH_ERROR"


class ConfigurationError(StorageError):
    default_code = "CONFIGURATION_ERROR"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    default_bucket: str = "audio-files"
    base_url: str = ""
    audio_path_prefix: str = "audio"
    max_retries: int = 3
    retry_delay: float = 0.5
    enable_logging: bool = True

    def __post_init__(self) -> None:
        if not self.default_bucket:
            raise ConfigurationError(
                ERROR_MESSAGES["INVALID_BUCKET_NAME"], code="INVALID_BUCKET_NAME", context={"base_url": self.base_url}
            )
        if not self.base_url:
            raise ConfigurationError(
                ERROR_MESSAGES["MISSING_BASE_URL"], code="MISSING_BASE_URL", context={"bucket": self.default_bucket}
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        return cls(
            default_bucket=settings.storage_bucket,
            base_url=settings.storage_base_url.rstrip("/"),
            audio_path_prefix=settings.audio_path_prefix,
            max_retries=settings.storage_max_retries,
            retry_delay=settings.storage_retry_delay,
            enable_logging=settings.storage_enable_logging,
        )


@dataclass(frozen=True, slots=True)
class CanonicalPath:
    file_name: str
    user_id: str | None = None
    prefix: str | None = None

    def __str__(self) -> str:
        return "/".join(part for part in (self.prefix, self.user_id, self.file_name) if part is not None)


@dataclass(frozen=True, slots=True)
class TranscriptionFormat:
    format: str
    sample_rate: int
    channels: int


OPTIMAL_TRANSCRIPTION_FORMAT = TranscriptionFormat(format="wav", sample_rate=16000, channels=1)


def remove_extension(file_name: str) -> str:
    """Drop everything from the last dot onward: ``a.b.c.mp3`` becomes ``a.b.c``."""
    if "." not in file_name:
        return file_name
    return file_name.rsplit(".", 1)[0]


class StoragePathUtil:
    def __init__(self, config: StorageConfig, sleep: Callable[[float], None] = time.sleep) -> None:
        self.config = config
        self._sleep = sleep

    def _log(self, level: int, event: str, **context: Any) -> None:
        if self.config.enable_logging:
            logger.log(level, event, extra={"storage": context})

    def get_bucket_config(self) -> StorageConfig:
        return self.config

    # Paths

    def get_audio_path(self, user_id: str, file_name: str) -> str:
        if not user_id:
            raise PathConstructionError(
                ERROR_MESSAGES["MISSING_USER_ID"], code="MISSING_USER_ID", context={"user_id": user_id, "file_name": file_name}
            )
        if not file_name:
            raise PathConstructionError(
                ERROR_MESSAGES["MISSING_FILE_NAME"], code="MISSING_FILE_NAME", context={"user_id": user_id, "file_name": file_name}
            )
        path = f"{self.config.audio_path_prefix}/{user_id}/{file_name}"
        self._log(logging.DEBUG, "audio_path_constructed", user_id=user_id, file_name=file_name, path=path)
        return path

    def get_transcription_path(self, user_id: str, file_name: str) -> str:
        """Path of the speech-recognition-ready copy of an upload, always a ``.wav``."""
        if not user_id:
            raise PathConstructionError(
                ERROR_MESSAGES["MISSING_USER_ID"], code="MISSING_USER_ID", context={"user_id": user_id, "file_name": file_name}
            )
        if not file_name:
            raise PathConstructionError(
                ERROR_MESSAGES["MISSING_FILE_NAME"], code="MISSING_FILE_NAME", context={"user_id": user_id, "file_name": file_name}
            )
        base_name = remove_extension(file_name)
        fmt = OPTIMAL_TRANSCRIPTION_FORMAT.format
        path = f"{self.config.audio_path_prefix}/{user_id}/transcription/{base_name}.{fmt}"
        self._log(logging.DEBUG, "transcription_path_constructed", user_id=user_id, file_name=file_name, path=path)
        return path

    def get_optimal_transcription_format(self) -> TranscriptionFormat:
        return OPTIMAL_TRANSCRIPTION_FORMAT

    def get_full_storage_path(self, path: str, bucket: str | None = None) -> str:
        if not path:
            raise PathConstructionError("Path is required", context={"path": path, "bucket": bucket})
        return f"{bucket or self.config.default_bucket}/{path}"

    # URLs

    def _object_url(self, kind: str, path: str, bucket: str | None) -> str:
        if not path:
            raise PathConstructionError("Path is required", context={"path": path, "bucket": bucket})
        if not self.config.base_url:
            raise ConfigurationError(ERROR_MESSAGES["MISSING_BASE_URL"], code="MISSING_BASE_URL", context={"path": path})
        bucket_name = bucket or self.config.default_bucket
        url = f"{self.config.base_url}/storage/v1/object/{kind}/{bucket_name}/{path}"
        self._log(logging.DEBUG, f"{kind}_url_constructed", path=path, bucket=bucket_name)
        return url

    def get_public_url(self, path: str, bucket: str | None = None) -> str:
        return self._object_url("public", path, bucket)

    def get_download_url(self, path: str, bucket: str | None = None) -> str:
        return self._object_url("download", path, bucket)

    def get_transcription_url(self, user_id: str, file_name: str) -> str:
        return self.get_public_url(self.get_transcription_path(user_id, file_name))

    def get_transcription_url_from_file(self, audio_file: Mapping[str, Any]) -> str:
        """Prefer the optimized transcription copy of a file record, else its original path."""
        if self.is_transcription_format_available(audio_file):
            return self.get_public_url(audio_file["transcription_formats"]["optimized"]["path"])
        return self.get_public_url(audio_file.get("file_path") or "")

    @staticmethod
    def is_transcription_format_available(audio_file: Mapping[str, Any]) -> bool:
        formats = audio_file.get("transcription_formats") or {}
        optimized = formats.get("optimized")
        return bool(optimized and optimized.get("path"))

    # Parsing

    def parse_file_path(self, path: str) -> CanonicalPath:
        if not path:
            raise InvalidPathError("Path is required", context={"path": path})
        parts = path.split("/")
        if len(parts) == 1:
            return CanonicalPath(file_name=parts[0])
        if len(parts) == 2:
            return CanonicalPath(file_name=parts[1], user_id=parts[0])
        return CanonicalPath(file_name=parts[2], user_id=parts[1], prefix=parts[0])

    def normalize_path(self, path: str) -> str:
        parsed = self.parse_file_path(path)
        if not parsed.user_id:
            raise InvalidPathError(
                ERROR_MESSAGES["MISSING_USER_ID"], code="MISSING_USER_ID", context={"path": path, "parsed": str(parsed)}
            )
        if parsed.prefix == self.config.audio_path_prefix:
            return path
        normalized = self.get_audio_path(parsed.user_id, parsed.file_name)
        self._log(logging.INFO, "path_normalized", original_path=path, normalized_path=normalized)
        return normalized

    def is_standard_path(self, path: str) -> bool:
        return self.parse_file_path(path).prefix == self.config.audio_path_prefix

    # Naming

    def generate_formatted_filename(self, original_filename: str) -> str:
        """
        Build a storage-safe, collision-resistant name for an upload.

        ``my file!.mp3`` becomes ``my_file__2025-01-01T10-00-00-000Z_k3x9qa.mp3``.
        A name without an extension keeps it as the base: ``README`` becomes
        ``README_<timestamp>_<suffix>`` with no trailing dot.
        """
        if not original_filename:
            raise PathConstructionError(
                "Original filename is required", code="MISSING_FILE_NAME", context={"original_filename": original_filename}
            )
        if "." in original_filename:
            base_name, extension = original_filename.rsplit(".", 1)
        else:
            base_name, extension = original_filename, ""
        base_name = _UNSAFE_CHARS.sub("_", base_name or "file")
        extension = _UNSAFE_CHARS.sub("_", extension)

        now = datetime.now(timezone.utc)
        timestamp = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
        timestamp = timestamp.replace(":", "-").replace(".", "-")
        suffix = "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(RANDOM_SUFFIX_LENGTH))

        formatted = f"{base_name}_{timestamp}_{suffix}"
        if extension:
            formatted = f"{formatted}.{extension}"
        self._log(logging.DEBUG, "formatted_filename_generated", original_filename=original_filename, formatted=formatted)
        return formatted

    # Remote calls

    def with_retry(self, operation: Callable[[], T], max_retries: int | None = None, delay: float | None = None) -> T:
        """
        Call ``operation`` up to ``max_retries + 1`` times.

        The wait after the n-th failure is ``delay * n``. The last error is
        re-raised unchanged.
        """
        retries = max(0, self.config.max_retries if max_retries is None else max_retries)
        wait = self.config.retry_delay if delay is None else delay
        attempt = 1
        while True:
            try:
                return operation()
            except Exception as exc:
                if attempt > retries:
                    self._log(logging.ERROR, "storage_operation_failed", attempts=attempt, error=str(exc))
                    raise
                self._log(logging.WARNING, "storage_operation_retry", attempt=attempt, max_retries=retries, error=str(exc))
                self._sleep(wait * attempt)
                attempt += 1

    @staticmethod
    def get_user_friendly_error_message(error: object) -> str:
        if isinstance(error, StorageError):
            return ERROR_MESSAGES.get(error.code, error.message)
        if isinstance(error, BaseException):
            return str(error)
        return UNKNOWN_ERROR_MESSAGE
