import pytest

from app.services.storage import (
    LocalObjectStore,
    delete_file,
    download_file,
    file_exists,
    get_file_url,
    upload_file,
)
from app.services.storage_paths import ERROR_MESSAGES


@pytest.fixture()
def store(tmp_path):
    return LocalObjectStore(tmp_path, "test-bucket")


class FlakyStore(LocalObjectStore):
    def __init__(self, root, default_bucket, failures: int) -> None:
        super().__init__(root, default_bucket)
        self.failures = failures
        self.put_calls = 0

    def put(self, path, data, bucket=None):
        self.put_calls += 1
        if self.put_calls <= self.failures:
            raise ConnectionError("storage unavailable")
        super().put(path, data, bucket)


def test_local_store_layout(store, tmp_path):
    store.put("audio/u1/a.mp3", b"one")
    store.put("audio/u1/transcription/a.wav", b"two")
    store.put("audio/u2/b.mp3", b"three", bucket="other")

    assert (tmp_path / "test-bucket" / "audio" / "u1" / "a.mp3").read_bytes() == b"one"
    assert store.get("audio/u2/b.mp3", bucket="other") == b"three"
    assert store.list("audio/u1") == ["audio/u1/a.mp3", "audio/u1/transcription/a.wav"]
    assert store.list("audio/nobody") == []
    assert store.exists("audio/u1/a.mp3")

    store.delete("audio/u1/a.mp3")
    store.delete("audio/u1/a.mp3")
    assert not store.exists("audio/u1/a.mp3")
    with pytest.raises(FileNotFoundError):
        store.get("audio/u1/a.mp3")


def test_local_store_refuses_escaping_paths(store):
    with pytest.raises(ValueError):
        store.put("../../etc/passwd", b"x")


def test_upload_download_delete_round_trip(store, paths):
    uploaded = upload_file(store, paths, "u1", "talk.m4a", b"audio-bytes")
    assert uploaded.success
    path = uploaded.data["path"]
    assert path.startswith("audio/u1/talk_")
    assert uploaded.data["url"] == f"https://example.com/storage/v1/object/public/test-bucket/{path}"

    legacy = path.removeprefix("audio/")
    assert file_exists(store, paths, legacy)
    assert download_file(store, paths, legacy).data == b"audio-bytes"

    assert delete_file(store, paths, path).success
    assert not file_exists(store, paths, path)

    missing = download_file(store, paths, path)
    assert not missing.success
    assert missing.data is None


def test_upload_retries_transient_failures(tmp_path, paths, sleeps):
    store = FlakyStore(tmp_path, "test-bucket", failures=2)

    result = upload_file(store, paths, "u1", "talk.mp3", b"data")

    assert result.success
    assert store.put_calls == 3
    assert sleeps == [0.5, 1.0]


def test_upload_reports_friendly_errors(store, paths):
    no_user = upload_file(store, paths, "", "talk.mp3", b"data")
    assert not no_user.success
    assert no_user.error == ERROR_MESSAGES["MISSING_USER_ID"]

    no_name = upload_file(store, paths, "u1", "", b"data")
    assert no_name.error == ERROR_MESSAGES["MISSING_FILE_NAME"]


def test_upload_gives_up_after_retries(tmp_path, paths, sleeps):
    store = FlakyStore(tmp_path, "test-bucket", failures=10)

    result = upload_file(store, paths, "u1", "talk.mp3", b"data")

    assert not result.success
    assert result.error == "storage unavailable"
    assert store.put_calls == 4
    assert len(sleeps) == 3


def test_get_file_url(paths):
    assert get_file_url(paths, "u1/a.mp3").data == "https://example.com/storage/v1/object/public/test-bucket/audio/u1/a.mp3"
    assert get_file_url(paths, "u1/a.mp3", download=True).data.endswith("/download/test-bucket/audio/u1/a.mp3")
    invalid = get_file_url(paths, "a.mp3")
    assert not invalid.success
    assert invalid.error == ERROR_MESSAGES["MISSING_USER_ID"]
