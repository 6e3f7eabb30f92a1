"""
Tests for the Sentry helpers when no DSN is configured.
"""

import logging

from canon.config import Settings
from canon.integrations import sentry


class TestSentry:
    def test_init_without_dsn_is_skipped(self):
        assert sentry.init_sentry(Settings(sentry_dsn="")) is False

    def test_secrets_are_masked(self):
        event = {"extra": {"key": "sk-abc123", "language": "de", "score": 55}}

        scrubbed = sentry._scrub_secrets(event, {})

        assert scrubbed["extra"] == {"key": "[Filtered]", "language": "de", "score": 55}

    def test_event_without_extra_passes_through(self):
        event = {"message": "hello"}
        assert sentry._scrub_secrets(event, {}) == {"message": "hello"}

    def test_disabled_capture_falls_back_to_logging(self, caplog):
        with caplog.at_level(logging.WARNING, logger="canon.integrations.sentry"):
            event_id = sentry.capture_message("Translation rejected", level="warning", language="de")

        assert event_id is None
        assert "Translation rejected" in caplog.text
