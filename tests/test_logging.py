"""
Tests for process-wide logging setup (text and JSON formats).
"""
import io
import json
import logging

import pytest

from app.core.logging import configure_logging


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.usefixtures("restore_root_logger")
class TestConfigureLogging:
    def test_json_format_emits_one_object_per_line(self):
        stream = io.StringIO()
        configure_logging("INFO", stream=stream, log_format="json")
        logging.getLogger("app.services.goals").info("Activated goal %s", 7)

        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["message"] == "Activated goal 7"
        assert record["level"] == "INFO"
        assert record["logger"] == "app.services.goals"
        assert record["app"] == "doglog-api"
        assert "timestamp" in record

    def test_text_format(self):
        stream = io.StringIO()
        configure_logging("WARNING", stream=stream)
        log = logging.getLogger("app.client.sync")
        log.info("hidden")
        log.warning("Sync failed")

        out = stream.getvalue()
        assert "hidden" not in out
        assert " - app.client.sync - WARNING - Sync failed" in out

    def test_reconfigure_replaces_handler(self):
        configure_logging("INFO", stream=io.StringIO())
        configure_logging("INFO", stream=io.StringIO(), log_format="JSON")
        assert len(logging.getLogger().handlers) == 1
