import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["AUTO_CREATE_TABLES"] = "true"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["WORKER_API_KEY"] = "worker-test-key"
os.environ["STORAGE_BASE_URL"] = "https://example.supabase.co"
os.environ["STORAGE_BUCKET"] = "audio-files"
os.environ["RATE_LIMIT_PER_MINUTE"] = "1000"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.main import create_app
from app.services.storage_paths import StorageConfig, StoragePathUtil


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    path = Path("test.db")
    if path.exists():
        path.unlink()


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def paths(sleeps):
    config = StorageConfig(default_bucket="test-bucket", base_url="https://example.com", audio_path_prefix="audio")
    return StoragePathUtil(config, sleep=sleeps.append)


@pytest.fixture()
def client(tmp_path):
    app = create_app()
    app.state.object_store.root = (tmp_path / "uploads").resolve()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers():
    def _headers(user_id: str = "user-1") -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture()
def worker_headers():
    return {"Authorization": "Bearer worker-test-key"}
