import re

import pytest

from app.services.storage_paths import (
    ERROR_MESSAGES,
    UNKNOWN_ERROR_MESSAGE,
    CanonicalPath,
    ConfigurationError,
    InvalidPathError,
    PathConstructionError,
    StorageConfig,
    StoragePathUtil,
    remove_extension,
)


def test_config_requires_bucket_and_base_url():
    with pytest.raises(ConfigurationError) as missing_bucket:
        StorageConfig(default_bucket="", base_url="https://example.com")
    assert missing_bucket.value.code == "INVALID_BUCKET_NAME"

    with pytest.raises(ConfigurationError) as missing_url:
        StorageConfig(default_bucket="audio-files", base_url="")
    assert missing_url.value.code == "MISSING_BASE_URL"


def test_audio_and_transcription_paths(paths):
    assert paths.get_audio_path("u1", "song.mp3") == "audio/u1/song.mp3"
    assert paths.get_transcription_path("u1", "a.b.c.mp3") == "audio/u1/transcription/a.b.c.wav"
    assert paths.get_transcription_path("u1", "noext") == "audio/u1/transcription/noext.wav"
    assert remove_extension("a.b.c.mp3") == "a.b.c"


@pytest.mark.parametrize(
    ("user_id", "file_name", "code"),
    [("", "song.mp3", "MISSING_USER_ID"), ("u1", "", "MISSING_FILE_NAME")],
)
def test_path_construction_preconditions(paths, user_id, file_name, code):
    for build in (paths.get_audio_path, paths.get_transcription_path):
        with pytest.raises(PathConstructionError) as exc_info:
            build(user_id, file_name)
        assert exc_info.value.code == code
        assert exc_info.value.context["file_name"] == file_name


def test_optimal_transcription_format(paths):
    fmt = paths.get_optimal_transcription_format()
    assert (fmt.format, fmt.sample_rate, fmt.channels) == ("wav", 16000, 1)


def test_urls_and_full_storage_path(paths):
    assert paths.get_full_storage_path("audio/u1/a.mp3") == "test-bucket/audio/u1/a.mp3"
    assert paths.get_full_storage_path("audio/u1/a.mp3", "other") == "other/audio/u1/a.mp3"
    assert paths.get_public_url("audio/u1/a.mp3") == "https://example.com/storage/v1/object/public/test-bucket/audio/u1/a.mp3"
    assert paths.get_download_url("audio/u1/a.mp3", "other") == "https://example.com/storage/v1/object/download/other/audio/u1/a.mp3"
    assert paths.get_transcription_url("u1", "a.mp3") == (
        "https://example.com/storage/v1/object/public/test-bucket/audio/u1/transcription/a.wav"
    )

    for build in (paths.get_full_storage_path, paths.get_public_url, paths.get_download_url):
        with pytest.raises(PathConstructionError):
            build("")


def test_url_requires_base_url_even_if_config_is_bypassed(paths):
    object.__setattr__(paths.config, "base_url", "")
    with pytest.raises(ConfigurationError) as exc_info:
        paths.get_public_url("audio/u1/a.mp3")
    assert exc_info.value.code == "MISSING_BASE_URL"


def test_transcription_url_from_file_record(paths):
    optimized = {"file_path": "audio/u1/a.m4a", "transcription_formats": {"optimized": {"path": "audio/u1/transcription/a.wav"}}}
    plain = {"file_path": "audio/u1/a.m4a", "transcription_formats": None}
    assert paths.is_transcription_format_available(optimized)
    assert not paths.is_transcription_format_available(plain)
    assert paths.get_transcription_url_from_file(optimized).endswith("/test-bucket/audio/u1/transcription/a.wav")
    assert paths.get_transcription_url_from_file(plain).endswith("/test-bucket/audio/u1/a.m4a")


def test_parse_file_path_segment_rules(paths):
    assert paths.parse_file_path("song.mp3") == CanonicalPath(file_name="song.mp3")
    assert paths.parse_file_path("u1/song.mp3") == CanonicalPath(file_name="song.mp3", user_id="u1")
    assert paths.parse_file_path("audio/u1/song.mp3/extra") == CanonicalPath(file_name="song.mp3", user_id="u1", prefix="audio")
    with pytest.raises(InvalidPathError):
        paths.parse_file_path("")


@pytest.mark.parametrize(("user_id", "file_name"), [("u1", "song.mp3"), ("abc-123", "a.b.c.wav"), ("x", "no_ext")])
def test_parse_round_trips_audio_path(paths, user_id, file_name):
    parsed = paths.parse_file_path(paths.get_audio_path(user_id, file_name))
    assert parsed == CanonicalPath(file_name=file_name, user_id=user_id, prefix="audio")
    assert str(parsed) == f"audio/{user_id}/{file_name}"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("audio/u1/song.mp3", "audio/u1/song.mp3"),
        ("u1/song.mp3", "audio/u1/song.mp3"),
        ("legacy/u1/song.mp3", "audio/u1/song.mp3"),
    ],
)
def test_normalize_path_is_idempotent(paths, raw, expected):
    once = paths.normalize_path(raw)
    assert once == expected
    assert paths.normalize_path(once) == once
    assert paths.is_standard_path(once)


def test_normalize_path_requires_user_id(paths):
    with pytest.raises(InvalidPathError) as exc_info:
        paths.normalize_path("song.mp3")
    assert exc_info.value.code == "MISSING_USER_ID"
    with pytest.raises(InvalidPathError):
        paths.normalize_path("/song.mp3")
    assert not paths.is_standard_path("u1/song.mp3")


def test_generate_formatted_filename(paths):
    first = paths.generate_formatted_filename("song.mp3")
    second = paths.generate_formatted_filename("song.mp3")
    pattern = r"^song_\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z_[a-z0-9]{6}\.mp3$"
    assert re.match(pattern, first)
    assert re.match(pattern, second)
    assert first != second

    sanitized = paths.generate_formatted_filename("my file!.mp3")
    assert sanitized.startswith("my_file__")
    assert sanitized.endswith(".mp3")
    assert re.fullmatch(r"[A-Za-z0-9\-_.]+", sanitized)

    assert re.match(r"^README_.*_[a-z0-9]{6}$", paths.generate_formatted_filename("README"))
    with pytest.raises(PathConstructionError):
        paths.generate_formatted_filename("")


def test_with_retry_gives_up_after_max_retries(paths, sleeps):
    calls = []
    boom = RuntimeError("storage unavailable")

    def always_fails():
        calls.append(1)
        raise boom

    with pytest.raises(RuntimeError) as exc_info:
        paths.with_retry(always_fails, max_retries=3, delay=1.0)
    assert exc_info.value is boom
    assert len(calls) == 4
    assert sleeps == [1.0, 2.0, 3.0]


def test_with_retry_returns_later_success(paths, sleeps):
    outcomes = [ConnectionError("blip"), ConnectionError("blip"), "ok"]
    calls = []

    def flaky():
        calls.append(1)
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert paths.with_retry(flaky) == "ok"
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_with_retry_zero_retries_calls_once(paths, sleeps):
    calls = []

    def fails():
        calls.append(1)
        raise ValueError("nope")

    with pytest.raises(ValueError):
        paths.with_retry(fails, max_retries=0)
    assert len(calls) == 1
    assert sleeps == []


def test_user_friendly_error_messages():
    assert StoragePathUtil.get_user_friendly_error_message(PathConstructionError("x")) == ERROR_MESSAGES["PATH_CONSTRUCTION_ERROR"]
    assert StoragePathUtil.get_user_friendly_error_message(
        PathConstructionError("x", code="MISSING_USER_ID")
    ) == ERROR_MESSAGES["MISSING_USER_ID"]
    assert StoragePathUtil.get_user_friendly_error_message(InvalidPathError("bad", code="SOMETHING_ELSE")) == "bad"
    assert StoragePathUtil.get_user_friendly_error_message(RuntimeError("raw message")) == "raw message"
    assert StoragePathUtil.get_user_friendly_error_message("not an error") == UNKNOWN_ERROR_MESSAGE
