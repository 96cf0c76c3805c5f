"""Object-store collaborator and the upload/download helpers built on ``StoragePathUtil``."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, Protocol, TypeVar

from fastapi import HTTPException, UploadFile, status

from app.core.config import get_settings
from app.services.storage_paths import StorageError, StoragePathUtil

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALLOWED_EXTENSIONS = {".mp3", ".wav", ".m4a", ".x-m4a", ".aac", ".ogg", ".flac", ".webm", ".mp4"}
CONTENT_TYPE_PREFIXES = ("audio/", "video/")
GENERIC_CONTENT_TYPES = {"application/octet-stream"}


class ObjectStore(Protocol):
    def put(self, path: str, data: bytes, bucket: str | None = None) -> None: ...

    def get(self, path: str, bucket: str | None = None) -> bytes: ...

    def delete(self, path: str, bucket: str | None = None) -> None: ...

    def list(self, prefix: str, bucket: str | None = None) -> list[str]: ...

    def exists(self, path: str, bucket: str | None = None) -> bool: ...


class LocalObjectStore:
    """Filesystem-backed store laid out as ``{root}/{bucket}/{path}``."""

    def __init__(self, root: str | Path, default_bucket: str) -> None:
        self.root = Path(root).resolve()
        self.default_bucket = default_bucket

    def _resolve(self, path: str, bucket: str | None) -> Path:
        bucket_root = (self.root / (bucket or self.default_bucket)).resolve()
        target = (bucket_root / path.lstrip("/")).resolve()
        if target != bucket_root and bucket_root not in target.parents:
            raise ValueError(f"Path escapes the storage root: {path}")
        return target

    def put(self, path: str, data: bytes, bucket: str | None = None) -> None:
        target = self._resolve(path, bucket)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def get(self, path: str, bucket: str | None = None) -> bytes:
        target = self._resolve(path, bucket)
        if not target.is_file():
            raise FileNotFoundError(path)
        return target.read_bytes()

    def delete(self, path: str, bucket: str | None = None) -> None:
        self._resolve(path, bucket).unlink(missing_ok=True)

    def list(self, prefix: str, bucket: str | None = None) -> list[str]:
        bucket_root = self._resolve("", bucket)
        base = self._resolve(prefix, bucket)
        if not base.is_dir():
            return []
        return sorted(p.relative_to(bucket_root).as_posix() for p in base.rglob("*") if p.is_file())

    def exists(self, path: str, bucket: str | None = None) -> bool:
        return self._resolve(path, bucket).is_file()


@dataclass(slots=True)
class StorageResult(Generic[T]):
    data: T | None = None
    error: str | None = None
    success: bool = False

    @classmethod
    def ok(cls, data: T) -> "StorageResult[T]":
        return cls(data=data, success=True)

    @classmethod
    def fail(cls, error: str) -> "StorageResult[T]":
        return cls(error=error, success=False)


def _failure(paths: StoragePathUtil, event: str, exc: Exception, **context) -> StorageResult:
    logger.warning(event, extra={"error": str(exc), "code": getattr(exc, "code", None), **context})
    return StorageResult.fail(paths.get_user_friendly_error_message(exc))


def upload_file(store: ObjectStore, paths: StoragePathUtil, user_id: str, filename: str, data: bytes) -> StorageResult[dict]:
    try:
        stored_name = paths.generate_formatted_filename(filename)
        path = paths.get_audio_path(user_id, stored_name)
        paths.with_retry(lambda: store.put(path, data))
        return StorageResult.ok({"path": path, "url": paths.get_public_url(path)})
    except (StorageError, OSError, ValueError) as exc:
        return _failure(paths, "storage_upload_failed", exc, user_id=user_id)


def download_file(store: ObjectStore, paths: StoragePathUtil, path: str) -> StorageResult[bytes]:
    try:
        normalized = paths.normalize_path(path)
        return StorageResult.ok(paths.with_retry(lambda: store.get(normalized)))
    except (StorageError, OSError, ValueError) as exc:
        return _failure(paths, "storage_download_failed", exc, path=path)


def delete_file(store: ObjectStore, paths: StoragePathUtil, path: str) -> StorageResult[bool]:
    try:
        normalized = paths.normalize_path(path)
        paths.with_retry(lambda: store.delete(normalized))
        return StorageResult.ok(True)
    except (StorageError, OSError, ValueError) as exc:
        return _failure(paths, "storage_delete_failed", exc, path=path)


def file_exists(store: ObjectStore, paths: StoragePathUtil, path: str) -> bool:
    try:
        return store.exists(paths.normalize_path(path))
    except (StorageError, OSError, ValueError):
        return False


def get_file_url(paths: StoragePathUtil, path: str, download: bool = False) -> StorageResult[str]:
    try:
        normalized = paths.normalize_path(path)
        url = paths.get_download_url(normalized) if download else paths.get_public_url(normalized)
        return StorageResult.ok(url)
    except StorageError as exc:
        return _failure(paths, "storage_url_failed", exc, path=path)


async def read_upload_file(file: UploadFile) -> bytes:
    settings = get_settings()
    ext = Path(file.filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported audio extension: {ext or 'none'}")
    content_type = file.content_type or ""
    if not content_type.startswith(CONTENT_TYPE_PREFIXES) and content_type not in GENERIC_CONTENT_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid content type: {content_type}")

    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            await file.close()
            raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File exceeds max size")
        chunks.append(chunk)
    await file.close()
    return b"".join(chunks)
