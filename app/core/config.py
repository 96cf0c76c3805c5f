from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Productory STT API"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False

    database_url: str = "sqlite:///./app.db"

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    upload_dir: str = "data/uploads"
    max_upload_size_mb: int = 100
    rate_limit_per_minute: int = 60
    auto_create_tables: bool = True

    storage_bucket: str = "audio-files"
    storage_base_url: str = "http://localhost:54321"
    audio_path_prefix: str = "audio"
    storage_max_retries: int = 3
    storage_retry_delay: float = 0.5
    storage_enable_logging: bool = True

    job_max_attempts: int = 3
    job_retry_delay_seconds: int = 30
    job_stuck_after_minutes: int = 30

    worker_api_key: str = ""
    worker_poll_interval_seconds: int = 5
    worker_max_jobs: int = 10

    celery_broker_url: str = ""
    celery_result_backend: str = ""
    redis_url: str = "redis://localhost:6379/0"
    celery_task_always_eager: bool = False

    def get_celery_broker_url(self) -> str:
        return self.celery_broker_url or self.redis_url

    def get_celery_result_backend(self) -> str:
        return self.celery_result_backend or self.get_celery_broker_url()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
