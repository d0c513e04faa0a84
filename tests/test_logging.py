"""Tests for structured logging configuration."""

import json
import logging
from unittest.mock import patch

from aicampaign.app.core.logging import (
    BelowErrorFilter,
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
    setup_logging,
)


def make_record(msg="Test message", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_json_format_with_context(self):
        record = make_record("Reserved slot")
        record.request_id = "scan-1"
        record.campaign_id = "campaign-1"
        record.admin_id = "admin-1"

        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "scan-1"
        assert data["campaign_id"] == "campaign-1"
        assert data["admin_id"] == "admin-1"

    def test_none_context_fields_are_omitted(self):
        record = make_record()
        ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert "request_id" not in data
        assert "campaign_id" not in data

    def test_json_format_with_extra_fields(self):
        record = make_record("Slot counter drift corrected")
        record.live_reservations = 3

        data = json.loads(JSONFormatter().format(record))

        assert data["extra"]["live_reservations"] == 3

    def test_json_format_with_exception(self):
        import sys

        try:
            raise ValueError("Test error")
        except ValueError:
            record = make_record("Error occurred", logging.ERROR, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        exception_text = "".join(data["exception"])
        assert "ValueError" in exception_text
        assert "Test error" in exception_text


class TestContextFilter:

    def test_adds_default_fields(self):
        record = make_record()

        assert ContextFilter().filter(record) is True
        for field in ("request_id", "campaign_id", "admin_id", "path", "method",
                      "status_code", "duration_ms"):
            assert hasattr(record, field)

    def test_preserves_existing_values(self):
        record = make_record()
        record.campaign_id = "campaign-1"

        ContextFilter().filter(record)

        assert record.campaign_id == "campaign-1"


class TestGetLoggingConfig:

    def test_default_text_format(self):
        with patch("aicampaign.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "text"
            mock_settings.log_level = "INFO"
            config = get_logging_config()

        assert "json" not in config["formatters"]
        assert config["handlers"]["console"]["formatter"] == "standard"

    def test_structured_format(self):
        with patch("aicampaign.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "structured"
            mock_settings.log_level = "DEBUG"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "structured"
        assert config["handlers"]["console"]["level"] == "DEBUG"
        assert "campaign_id" in config["formatters"]["structured"]["format"]

    def test_json_format(self):
        with patch("aicampaign.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "WARNING"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["loggers"]["aicampaign"]["level"] == "WARNING"

    def test_context_filter_added(self):
        config = get_logging_config()
        assert "context" in config["handlers"]["console"]["filters"]

    def test_errors_routed_to_stderr_only(self):
        config = get_logging_config()
        assert "below_error" in config["handlers"]["console"]["filters"]
        assert config["handlers"]["error_console"]["level"] == "ERROR"

        below_error = BelowErrorFilter()
        assert below_error.filter(make_record(level=logging.WARNING)) is True
        assert below_error.filter(make_record(level=logging.ERROR)) is False


class TestGetLogContext:

    def test_filters_none(self):
        context = get_log_context(request_id="scan-1", campaign_id=None, admin_id="admin-1")
        assert context == {"request_id": "scan-1", "admin_id": "admin-1"}

    def test_extra_fields(self):
        context = get_log_context(campaign_id="campaign-1", remaining=549)
        assert context == {"campaign_id": "campaign-1", "remaining": 549}


class TestIntegration:

    def test_default_logger_name(self):
        assert get_logger().name == "aicampaign"

    def test_json_logging_output(self, capsys):
        with patch("aicampaign.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "INFO"

            setup_logging()
            logger = get_logger("aicampaign.test")
            logger.info(
                "Reserved slot",
                extra=get_log_context(request_id="scan-1", campaign_id="campaign-1"),
            )

        data = json.loads(capsys.readouterr().out.strip())

        assert data["logger"] == "aicampaign.test"
        assert data["message"] == "Reserved slot"
        assert data["request_id"] == "scan-1"
        assert data["campaign_id"] == "campaign-1"
