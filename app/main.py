from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Deque

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.base import Base
from app.db.session import engine
from app.routers import files, jobs, worker
from app.services.storage import LocalObjectStore
from app.services.storage_paths import StorageConfig, StorageError, StoragePathUtil


class RateLimiter:
    def __init__(self, limit_per_minute: int) -> None:
        self.limit_per_minute = limit_per_minute
        self._hits: dict[str, Deque[float]] = defaultdict(deque)
        self._last_sweep = 0.0

    def _sweep(self, window_start: float) -> None:
        # forget clients with no hits left in the window
        for key in list(self._hits):
            bucket = self._hits[key]
            while bucket and bucket[0] < window_start:
                bucket.popleft()
            if not bucket:
                del self._hits[key]

    def hit(self, key: str, now: float | None = None) -> bool:
        now = datetime.now(timezone.utc).timestamp() if now is None else now
        window_start = now - 60
        if now - self._last_sweep >= 60:
            self._sweep(window_start)
            self._last_sweep = now
        bucket = self._hits[key]
        while bucket and bucket[0] < window_start:
            bucket.popleft()
        if len(bucket) >= self.limit_per_minute:
            return False
        bucket.append(now)
        return True


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    storage_config = StorageConfig.from_settings(settings)
    app.state.storage_paths = StoragePathUtil(storage_config)
    app.state.object_store = LocalObjectStore(settings.upload_dir, storage_config.default_bucket)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    limiter = RateLimiter(settings.rate_limit_per_minute)

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        key = request.client.host if request.client else "unknown"
        if not limiter.hit(key):
            return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content={"detail": "Rate limit exceeded"})
        return await call_next(request)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": StoragePathUtil.get_user_friendly_error_message(exc), "code": exc.code},
        )

    app.include_router(jobs.router)
    app.include_router(worker.router)
    app.include_router(files.router)

    @app.on_event("startup")
    def startup() -> None:
        if settings.auto_create_tables:
            Base.metadata.create_all(bind=engine)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
