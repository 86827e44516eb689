"""Tests for the observability module.

Tests for metrics collection, operation timing and logging configuration.
"""
import json
import logging
import time
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from orgnote.observability import MetricsCollector, configure_logging, timed_operation


@pytest.fixture
def clean_orgnote_logger():
    """Give the test a handler-free ``orgnote`` logger and restore it after."""
    logger = logging.getLogger("orgnote")
    handlers = list(logger.handlers)
    level = logger.level
    logger.handlers = []
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_collector(self, tmp_path):
        """Create a MetricsCollector writing into the temp directory."""
        return MetricsCollector(metrics_file=tmp_path / "metrics.json")

    def test_record_successful_operation(self, metrics_collector):
        metrics_collector.record_operation("sync", 100.0, True)

        metrics = metrics_collector.get_metrics()
        assert metrics["sync"]["count"] == 1
        assert metrics["sync"]["success_count"] == 1
        assert metrics["sync"]["error_count"] == 0
        assert metrics["sync"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self, metrics_collector):
        metrics_collector.record_operation("sync", 50.0, False, "Parse failed")

        metrics = metrics_collector.get_metrics()
        assert metrics["sync"]["error_count"] == 1
        assert metrics["sync"]["last_error"] == "Parse failed"

    def test_multiple_operations_aggregated(self, metrics_collector):
        metrics_collector.record_operation("sync", 100.0, True)
        metrics_collector.record_operation("sync", 200.0, True)
        metrics_collector.record_operation("sync", 300.0, False, "Error")

        metrics = metrics_collector.get_metrics()
        assert metrics["sync"]["count"] == 3
        assert metrics["sync"]["success_count"] == 2
        assert metrics["sync"]["avg_duration_ms"] == 200.0  # (100+200+300)/3
        assert metrics["sync"]["max_duration_ms"] == 300.0

    def test_save_metrics(self, metrics_collector, tmp_path):
        metrics_collector.record_operation("sync-all", 100.0, True)

        assert metrics_collector.save_metrics() is True

        data = json.loads((tmp_path / "metrics.json").read_text())
        assert data["operations"]["sync-all"]["count"] == 1
        assert "saved_at" in data
        assert not (tmp_path / "metrics.tmp").exists()

    def test_save_metrics_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        collector = MetricsCollector(metrics_file=blocker / "metrics.json")
        assert collector.save_metrics() is False

    def test_reset_metrics(self, metrics_collector):
        metrics_collector.record_operation("sync", 100.0, True)
        metrics_collector.reset()
        assert metrics_collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_timed_operation_records_success(self, tmp_path):
        collector = MetricsCollector(metrics_file=tmp_path / "metrics.json")

        with patch("orgnote.observability.metrics", collector):
            with timed_operation("sync", path="a.org") as op:
                time.sleep(0.01)
                op["nodes"] = 2

        metrics = collector.get_metrics()
        assert metrics["sync"]["success_count"] == 1
        assert metrics["sync"]["avg_duration_ms"] >= 10
        assert len(op["correlation_id"]) == 8

    def test_timed_operation_records_failure(self, tmp_path):
        collector = MetricsCollector(metrics_file=tmp_path / "metrics.json")

        with patch("orgnote.observability.metrics", collector):
            with pytest.raises(ValueError):
                with timed_operation("sync"):
                    raise ValueError("Test error")

        metrics = collector.get_metrics()
        assert metrics["sync"]["error_count"] == 1
        assert "Test error" in metrics["sync"]["last_error"]


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_creates_directory_and_returns_path(self, tmp_path, clean_orgnote_logger):
        log_dir = tmp_path / "logs"

        result = configure_logging(log_dir=log_dir, console=False)

        assert result == log_dir
        assert log_dir.is_dir()

    def test_sets_level_and_writes_file(self, tmp_path, clean_orgnote_logger):
        log_dir = tmp_path / "logs"
        configure_logging(log_dir=log_dir, level=logging.DEBUG, console=False)

        assert clean_orgnote_logger.level == logging.DEBUG
        logging.getLogger("orgnote.test").info("hello log")
        for handler in clean_orgnote_logger.handlers:
            handler.flush()
        assert "hello log" in (log_dir / "orgnote.log").read_text(encoding="utf-8")

    def test_handlers_not_duplicated(self, tmp_path, clean_orgnote_logger):
        configure_logging(log_dir=tmp_path, console=True)
        configure_logging(log_dir=tmp_path, console=True)

        handlers = clean_orgnote_logger.handlers
        assert sum(isinstance(h, RotatingFileHandler) for h in handlers) == 1
        assert sum(
            isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
            for h in handlers
        ) == 1
