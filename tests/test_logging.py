import logging

from app.core.logging import RedactionFilter


def test_redaction_filter_masks_credentials():
    record = logging.LogRecord("app", logging.INFO, __file__, 1, "worker_called", None, None)
    record.worker_api_key = "secret"
    record.job_id = "job-1"

    assert RedactionFilter().filter(record) is True
    assert record.worker_api_key == "[REDACTED]"
    assert record.job_id == "job-1"
