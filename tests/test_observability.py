"""Tests for the observability module.

Tests for metrics collection, logging configuration and operation tracing.
"""
import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

from slinky_do.observability import (
    ROOT_LOGGER_NAME,
    MetricsCollector,
    configure_logging,
    metrics,
    timed_operation,
)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_collector(self, tmp_path):
        """Create a MetricsCollector with temp file."""
        return MetricsCollector(metrics_file=tmp_path / "metrics.json")

    def test_record_successful_operation(self, metrics_collector):
        """Test recording a successful operation."""
        metrics_collector.record_operation("add_todo", 100.0, True)

        result = metrics_collector.get_metrics()
        assert result["add_todo"]["count"] == 1
        assert result["add_todo"]["success_count"] == 1
        assert result["add_todo"]["error_count"] == 0
        assert result["add_todo"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self, metrics_collector):
        """Test recording a failed operation with error."""
        metrics_collector.record_operation("move_note", 50.0, False, "Test error")

        result = metrics_collector.get_metrics()
        assert result["move_note"]["error_count"] == 1
        assert result["move_note"]["last_error"] == "Test error"
        assert result["move_note"]["last_error_time"] is not None

    def test_multiple_operations_aggregated(self, metrics_collector):
        """Test that multiple operations are aggregated correctly."""
        metrics_collector.record_operation("scan", 100.0, True)
        metrics_collector.record_operation("scan", 200.0, True)
        metrics_collector.record_operation("scan", 300.0, False, "Error")

        result = metrics_collector.get_metrics()
        assert result["scan"]["count"] == 3
        assert result["scan"]["avg_duration_ms"] == 200.0
        assert result["scan"]["max_duration_ms"] == 300.0

    def test_get_summary(self, metrics_collector):
        metrics_collector.record_operation("op1", 100.0, True)
        metrics_collector.record_operation("op2", 200.0, False, "Error")

        summary = metrics_collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_errors"] == 1
        assert summary["overall_success_rate"] == 0.5

    def test_empty_summary(self, metrics_collector):
        assert metrics_collector.get_summary()["overall_success_rate"] == 1.0

    def test_save_metrics(self, metrics_collector, tmp_path):
        metrics_collector.record_operation("op1", 10.0, True)
        assert metrics_collector.save_metrics() is True

        with open(tmp_path / "metrics.json") as f:
            data = json.load(f)
        assert data["operations"]["op1"]["count"] == 1
        assert not (tmp_path / "metrics.tmp").exists()

    def test_reset_metrics(self, metrics_collector):
        metrics_collector.record_operation("op", 100.0, True)
        metrics_collector.reset()
        assert metrics_collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for the timed_operation context manager."""

    def setup_method(self):
        metrics.reset()

    def test_timed_operation_records_success(self):
        with timed_operation("test_success", path="a.md") as op:
            op["result_count"] = 3
            assert len(op["correlation_id"]) == 8

        assert metrics.get_metrics()["test_success"]["success_count"] == 1

    def test_timed_operation_records_failure(self):
        with pytest.raises(ValueError):
            with timed_operation("test_failure"):
                raise ValueError("bad")

        result = metrics.get_metrics()["test_failure"]
        assert result["error_count"] == 1
        assert result["last_error"] == "bad"


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore_handlers(self):
        root = logging.getLogger(ROOT_LOGGER_NAME)
        saved_handlers, saved_level = list(root.handlers), root.level
        yield
        for handler in root.handlers:
            if handler not in saved_handlers:
                handler.close()
        root.handlers = saved_handlers
        root.setLevel(saved_level)

    def test_creates_rotating_log_file(self, tmp_path):
        log_dir = configure_logging(log_dir=tmp_path / "logs", level=logging.DEBUG, console=False)

        assert log_dir == tmp_path / "logs"
        logging.getLogger("slinky_do.tests").info("hello from test")
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in root.handlers:
            handler.flush()
        assert "hello from test" in (log_dir / "slinky-do.log").read_text()

    def test_handlers_not_duplicated(self, tmp_path):
        configure_logging(log_dir=tmp_path, console=False)
        configure_logging(log_dir=tmp_path, console=False)

        root = logging.getLogger(ROOT_LOGGER_NAME)
        file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
