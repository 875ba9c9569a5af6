"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import logging
from io import StringIO

from bruteguard.core.logging import JsonFormatter, SensitiveDataFilter, clear_request_id, set_request_id


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_credentials():
    """Ensure passwords and auth headers never reach the output."""

    logger, stream = _capture("test_redaction")

    logger.info(
        "login_event",
        extra={
            "password": "hunter2",
            "authorization": "Bearer abc",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()

    assert "hunter2" not in output
    assert "Bearer abc" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_store_connection_details():
    """Ensure configured accounts and the Redis URL are redacted."""

    logger, stream = _capture("test_config_redaction")

    logger.info(
        "config_event",
        extra={
            "redis_url": "redis://:pass@cache:6379/0",
            "app_users": "alice:wonderland",
            "backend": "redis",
        },
    )

    output = stream.getvalue()

    assert "pass@cache" not in output
    assert "wonderland" not in output
    assert "redis" in output


def test_sensitive_filter_allows_throttle_fields():
    """Verify guard log fields pass through unmodified."""

    logger, stream = _capture("test_safe_fields")

    logger.warning(
        "brute.denied",
        extra={
            "guard": "login-ip",
            "key_hash": "abcdef0123456789",
            "count": 4,
            "next_valid_request_date": "2024-01-01T00:01:00+00:00",
        },
    )

    output = stream.getvalue()

    assert "login-ip" in output
    assert "abcdef0123456789" in output
    assert "2024-01-01T00:01:00+00:00" in output
    assert "[REDACTED]" not in output


def test_sensitive_filter_redacts_nested_dicts():
    """Ensure nested sensitive fields are redacted."""

    logger, stream = _capture("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "cookie": "session=abc",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()

    assert "session=abc" not in output
    assert "[REDACTED]" in output
    assert "pytest" in output


def test_json_formatter_includes_request_id_from_context():
    logger, stream = _capture("test_request_id")

    set_request_id("req-42")
    try:
        logger.info("event")
    finally:
        clear_request_id()

    assert '"request_id": "req-42"' in stream.getvalue()


def test_derived_keys_are_shortened():
    """Ensure full derived keys never reach the output."""

    logger, stream = _capture("test_key_prefix")
    derived = "A" * 20 + "B" * 24

    logger.error("brute.store_error", extra={"key": derived})

    output = stream.getvalue()

    assert derived not in output
    assert '"key": "' + "A" * 16 + '"' in output
