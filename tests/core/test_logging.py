"""Tests for quotesync.core.logging."""

import io
import json

from quotesync.core.logging import LogContext, configure_logging, get_logger


def _configure(stream: io.StringIO, **kwargs) -> None:
    configure_logging(stream=stream, cache_loggers=False, **kwargs)


class TestConfigureLogging:
    def test_json_output_is_ecs_compatible(self):
        stream = io.StringIO()
        _configure(stream, level="INFO", json_format=True, service="quotesync-test")
        get_logger("quotesync.test").info("record_queued", record_id="temp_1")

        line = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert line["event"] == "record_queued"
        assert line["record_id"] == "temp_1"
        assert line["log.level"] == "info"
        assert line["service.name"] == "quotesync-test"
        assert line["logger"] == "quotesync.test"
        assert "@timestamp" in line

    def test_module_logger_created_before_configuration(self):
        logger = get_logger("quotesync.sync.early")
        stream = io.StringIO()
        _configure(stream, level="INFO", json_format=True)

        logger.info("sync_started")

        line = json.loads(stream.getvalue().strip())
        assert line["event"] == "sync_started"
        assert line["logger"] == "quotesync.sync.early"

    def test_unnamed_logger_has_no_logger_key(self):
        stream = io.StringIO()
        _configure(stream, level="INFO", json_format=True)
        get_logger().info("anonymous")
        assert "logger" not in json.loads(stream.getvalue().strip())

    def test_level_filtering(self):
        stream = io.StringIO()
        _configure(stream, level="WARNING", json_format=True)
        logger = get_logger("quotesync.test")
        logger.info("hidden")
        logger.warning("shown")
        output = stream.getvalue()
        assert "hidden" not in output
        assert "shown" in output


class TestLogContext:
    def test_binds_and_unbinds(self):
        stream = io.StringIO()
        _configure(stream, level="INFO", json_format=True)
        logger = get_logger("quotesync.test")

        with LogContext(sync_run="run-1"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = (json.loads(line) for line in stream.getvalue().strip().splitlines())
        assert inside["sync_run"] == "run-1"
        assert "sync_run" not in outside
