#!/usr/bin/env python3
"""
Tests for common/logging_config.py

Covers:
- Credential redaction in messages and args
- Structured JSON output
- Run ID generation and scoping
- Root logger setup (handlers replaced, file rotation)
"""

import json
import logging

import pytest

from common.logging_config import (
    NO_RUN_ID,
    LogContext,
    RunIdFilter,
    SanitizingFilter,
    StructuredFormatter,
    generate_run_id,
    get_run_id,
    parse_log_level,
    set_run_id,
    setup_logging,
)


def _record(msg, args=None, **extra):
    record = logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSanitizingFilter:
    """Redaction of credential-like fragments."""

    def test_message_redacted(self):
        record = _record("connecting with service_role_key=abc123 to db")
        SanitizingFilter().filter(record)
        assert record.getMessage() == "connecting with service_role_key=[REDACTED] to db"

    def test_colon_form(self):
        record = _record("Authorization: Bearer-xyz")
        SanitizingFilter().filter(record)
        assert "xyz" not in record.getMessage()

    def test_tuple_args_redacted(self):
        record = _record("config %s", ("password=hunter2",))
        SanitizingFilter().filter(record)
        assert record.getMessage() == "config password=[REDACTED]"

    def test_dict_args_redacted(self):
        record = _record("%(api_key)s %(deal)s", ({"api_key": "k", "deal": "d1"},))
        SanitizingFilter().filter(record)
        assert record.getMessage() == "[REDACTED] d1"

    def test_plain_message_untouched(self):
        record = _record("Scored deal %s", ("d1",))
        SanitizingFilter().filter(record)
        assert record.getMessage() == "Scored deal d1"


class TestStructuredFormatter:
    """One JSON object per line."""

    def test_fields(self):
        record = _record("hello %s", ("world",), run_id="abcd1234", deal_id="d1")
        data = json.loads(StructuredFormatter(include_timestamp=False).format(record))
        assert data == {
            "deal_id": "d1",
            "level": "INFO",
            "logger": "test",
            "message": "hello world",
            "run_id": "abcd1234",
        }

    def test_extra_fields(self):
        formatter = StructuredFormatter(include_timestamp=False, extra_fields={"service": "portfolio"})
        data = json.loads(formatter.format(_record("x")))
        assert data["service"] == "portfolio"


class TestRunId:
    """Run correlation IDs."""

    def test_seeded_id(self):
        assert generate_run_id("sha256:0123456789abcdef") == "01234567"

    def test_random_id(self):
        run_id = generate_run_id()
        assert len(run_id) == 8
        assert run_id != generate_run_id()

    def test_context_restores_previous(self):
        set_run_id("outer")
        with LogContext("inner") as run_id:
            assert run_id == "inner"
            assert get_run_id() == "inner"
        assert get_run_id() == "outer"

    def test_filter_default(self):
        with LogContext("scoped"):
            record = _record("x")
            RunIdFilter().filter(record)
            assert record.run_id == "scoped"
        set_run_id("")
        record = _record("x")
        RunIdFilter().filter(record)
        assert record.run_id == NO_RUN_ID


class TestSetupLogging:
    """Root logger configuration."""

    def test_parse_log_level(self):
        assert parse_log_level("debug") == logging.DEBUG
        assert parse_log_level(logging.WARNING) == logging.WARNING
        with pytest.raises(ValueError):
            parse_log_level("LOUD")

    def test_replaces_handlers(self, restore_root_logger):
        setup_logging(log_level="WARNING")
        setup_logging(log_level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_file_handler(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        setup_logging(log_file=log_file, enable_console=False, structured_output=True)
        logging.getLogger("portfolio.aggregator").info("token=s3cr3t aggregated")
        for handler in logging.getLogger().handlers:
            handler.flush()
        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        data = json.loads(line)
        assert data["message"] == "token=[REDACTED] aggregated"
        assert data["logger"] == "portfolio.aggregator"
