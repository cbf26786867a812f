import logging
from unittest.mock import patch

from infrastructure import observability


def test_scrubber_masks_frames_request_and_breadcrumbs():
    event = {
        "exception": {"values": [{"stacktrace": {"frames": [{"vars": {"password": "hunter2", "email": "ann@example.com"}}]}}]},
        "request": {"headers": {"cookie": "nest_auth_token=abc"}, "query_string": "access_token=" + "a" * 40},
        "breadcrumbs": {"values": [{"message": "login for bob@example.com"}]},
    }

    scrubbed = observability._scrub_sensitive_data(event, {})

    frame_vars = scrubbed["exception"]["values"][0]["stacktrace"]["frames"][0]["vars"]
    assert frame_vars == {"password": "[REDACTED]", "email": "[REDACTED]"}
    assert scrubbed["request"]["headers"]["cookie"] == "[REDACTED]"
    assert "a" * 40 not in scrubbed["request"]["query_string"]
    assert "bob@example.com" not in scrubbed["breadcrumbs"]["values"][0]["message"]


def test_scrubber_leaves_plain_text():
    event = {"breadcrumbs": {"values": [{"message": "planner run finished"}]}}
    assert observability._scrub_sensitive_data(event, {}) == event


@patch("sentry_sdk.init")
def test_setup_observability_without_dsn(mock_init, monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    observability.setup_observability()
    mock_init.assert_not_called()
    assert logging.getLogger("urllib3").level == logging.WARNING


@patch("sentry_sdk.init")
def test_setup_observability_with_dsn(mock_init, monkeypatch):
    monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example/1")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "0.5")
    observability.setup_observability()
    _, kwargs = mock_init.call_args
    assert kwargs["traces_sample_rate"] == 0.5
    assert kwargs["send_default_pii"] is False
    assert kwargs["before_send"] is observability._scrub_sensitive_data
