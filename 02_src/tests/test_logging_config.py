"""Tests for structured logging."""

import json
import logging

from intake.logging_config import JSONFormatter, get_logger, setup_logging


def make_record(**extra):
    record = logging.LogRecord(
        name="intake.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="New session for %s",
        args=("+5511999990000",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_formats_as_json(self):
        data = json.loads(JSONFormatter().format(make_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "intake.engine"
        assert data["message"] == "New session for +5511999990000"
        assert "context" not in data

    def test_includes_context(self):
        record = make_record(context={"contact_id": "+5511999990000"})
        data = json.loads(JSONFormatter().format(record))
        assert data["context"] == {"contact_id": "+5511999990000"}


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_writes_to_file(self, tmp_path):
        log_file = tmp_path / "logs" / "intake.log"
        setup_logging(log_level="DEBUG", log_file=str(log_file), console=False)

        get_logger("intake.test").info("hello", extra={"context": {"k": "v"}})
        for handler in logging.getLogger().handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["context"] == {"k": "v"}
