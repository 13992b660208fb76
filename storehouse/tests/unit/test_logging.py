"""Tests for the structured logging helpers."""

import pytest

from storehouse.structured_logging.enhanced_logging_config import (
    bind_connection_context,
    clear_request_context,
    get_current_context,
    sanitize_sensitive_data,
    unbind_connection_context,
)


@pytest.fixture(autouse=True)
def _clean_context():
    clear_request_context()
    yield
    clear_request_context()


def test_sensitive_keys_redacted():
    event = sanitize_sensitive_data(
        None,
        "info",
        {
            "event": "handshake",
            "access_token": "eyJhbGciOi",
            "Authorization": "Bearer abc",
            "nested": {"jwt_secret": "s3cr3t", "user_id": "u1"},
            "connection_id": "c1",
        },
    )

    assert event["access_token"] == "[REDACTED]"
    assert event["Authorization"] == "[REDACTED]"
    assert event["nested"] == {"jwt_secret": "[REDACTED]", "user_id": "u1"}
    assert event["connection_id"] == "c1"


def test_connection_context_binding():
    bind_connection_context(connection_id="c1", user_id="u1", tenant_id="T1", request_id="r1")

    assert get_current_context() == {"connection_id": "c1", "user_id": "u1", "tenant_id": "T1", "request_id": "r1"}

    unbind_connection_context()
    assert get_current_context() == {"request_id": "r1"}


def test_unset_values_not_bound():
    bind_connection_context(connection_id="c1")

    assert get_current_context() == {"connection_id": "c1"}


def test_service_key_redacted():
    event = sanitize_sensitive_data(None, "info", {"event": "publish", "x-service-key": "k", "service_key": "k"})

    assert event["x-service-key"] == "[REDACTED]"
    assert event["service_key"] == "[REDACTED]"
