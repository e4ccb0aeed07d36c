import logging

import pytest

from mortiscope_jobs.logging.logger import ContextFormatter, Log


def _record(message: str, context: dict | None = None) -> logging.LogRecord:
    record = logging.LogRecord("mortiscope", logging.ERROR, __file__, 1, message, None, None)
    if context is not None:
        record.context = context
    return record


class TestContextFormatter:
    def test_appends_context_pairs(self) -> None:
        formatter = ContextFormatter("%(message)s")

        output = formatter.format(_record("Run failed", {"run_id": "r-1", "attempt": 2}))

        assert output == "Run failed | run_id=r-1 attempt=2"

    def test_plain_message_without_context(self) -> None:
        formatter = ContextFormatter("%(message)s")

        assert formatter.format(_record("Worker started")) == "Worker started"

    def test_empty_context_is_omitted(self) -> None:
        formatter = ContextFormatter("%(message)s")

        assert formatter.format(_record("Worker started", {})) == "Worker started"


class TestLog:
    def test_keyword_arguments_become_context(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="mortiscope"):
            Log.info("Queued run", event_id="evt-1")

        record = caplog.records[-1]
        assert record.getMessage() == "Queued run"
        assert record.context == {"event_id": "evt-1"}

    def test_critical_level(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="mortiscope"):
            Log.critical("Manual intervention required", user_id="u-1")

        assert caplog.records[-1].levelno == logging.CRITICAL
