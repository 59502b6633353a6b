"""Tests for structured logging configuration."""

import json
import logging

from shieldgate.app.core.config import Settings
from shieldgate.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
    hash_client_key,
)


def make_record(msg: str = "Test message") -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        """Test basic JSON formatting."""
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_json_format_with_context(self):
        """Test JSON formatting with admission context fields."""
        record = make_record("Suspicious activity detected")
        record.client_key = "0123456789abcdef"
        record.attack_types = ["XSS", "LFI"]
        record.score = 3
        record.backend = "redis"

        data = json.loads(JSONFormatter().format(record))

        assert data["client_key"] == "0123456789abcdef"
        assert data["attack_types"] == ["XSS", "LFI"]
        assert data["score"] == 3
        assert data["backend"] == "redis"
        assert "extra" not in data

    def test_json_format_with_extra_fields(self):
        """Unknown attributes land under "extra"."""
        record = make_record()
        record.shield_backend = "memory"

        data = json.loads(JSONFormatter().format(record))
        assert data["extra"] == {"shield_backend": "memory"}

    def test_json_format_with_exception(self):
        """Test JSON formatting with exception info."""
        try:
            raise ValueError("store down")
        except ValueError:
            import sys
            record = logging.LogRecord(
                name="test",
                level=logging.ERROR,
                pathname="test.py",
                lineno=1,
                msg="Store failure",
                args=(),
                exc_info=sys.exc_info(),
            )

        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: store down" in "".join(data["exception"])


class TestContextFilter:
    """Test the context filter defaults."""

    def test_missing_fields_get_defaults(self):
        record = make_record()
        assert ContextFilter().filter(record) is True
        assert record.client_key is None
        assert record.backend is None

    def test_existing_fields_kept(self):
        record = make_record()
        record.client_key = "abc"
        ContextFilter().filter(record)
        assert record.client_key == "abc"


class TestLogContext:
    """Test get_log_context helper."""

    def test_client_key_is_hashed(self):
        context = get_log_context(client_key="ip:10.0.0.1")
        assert context["client_key"] == hash_client_key("ip:10.0.0.1")
        assert "10.0.0.1" not in context["client_key"]
        assert len(context["client_key"]) == 16

    def test_none_values_dropped(self):
        assert get_log_context() == {}

    def test_extra_fields_included(self):
        context = get_log_context(backend="database", score=2, path="/echo")
        assert context == {"backend": "database", "score": 2, "path": "/echo"}


class TestLoggingConfig:
    """Test dictConfig generation."""

    def test_text_format_uses_standard_formatter(self):
        config = get_logging_config(Settings(_env_file=None, log_format="text"))
        assert config["handlers"]["console"]["formatter"] == "standard"

    def test_json_format(self):
        config = get_logging_config(Settings(_env_file=None, log_format="json", log_level="debug"))
        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["formatters"]["json"]["()"].endswith("JSONFormatter")
        assert config["loggers"]["shieldgate"]["level"] == "DEBUG"

    def test_structured_format(self):
        config = get_logging_config(Settings(_env_file=None, log_format="structured"))
        assert config["handlers"]["console"]["formatter"] == "structured"
        assert config["handlers"]["console"]["filters"] == ["context"]

    def test_get_logger_default_name(self):
        assert get_logger().name == "shieldgate"
        assert get_logger("shieldgate.stores").name == "shieldgate.stores"
