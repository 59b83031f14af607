"""Logging and tool metrics for the slinky-do vault server.

Every MCP tool body runs inside ``timed_operation``, which tags its log lines
with a short correlation id and feeds the process-wide ``metrics`` collector
that the ``stats`` section of ``get_vault_info`` reports from.
"""
import json
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

# Everything under the package logs through this hierarchy
ROOT_LOGGER_NAME = "slinky_do"

DEFAULT_LOG_DIR = Path.home() / ".slinky-do" / "logs"
DEFAULT_METRICS_FILE = Path.home() / ".slinky-do" / "metrics.json"

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Configure rotating file logging for the ``slinky_do`` loggers.

    The MCP stdio transport owns stdout, so the console handler writes to
    stderr (the ``StreamHandler`` default).

    Args:
        log_dir: Directory for log files. Defaults to ~/.slinky-do/logs/
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation (default: 5 MB)
        backup_count: Number of rotated files to keep (default: 3)
        console: Also log to stderr (default: True)

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "slinky-do.log"
    if not any(
        isinstance(h, RotatingFileHandler)
        and Path(h.baseFilename) == log_file.resolve()
        for h in root_logger.handlers
    ):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.info(f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)")

    return log_path


@dataclass
class OperationMetrics:
    """Metrics for a single operation type."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None


class MetricsCollector:
    """Per-operation metrics for server tools (add_todo, enrich_vault, ...).

    Counts are kept in memory and can be written to a JSON file on demand
    or on shutdown.
    """

    def __init__(self, metrics_file: Optional[Union[str, Path]] = None):
        """Initialize the metrics collector.

        Args:
            metrics_file: Path used by ``save_metrics``. Defaults to ~/.slinky-do/metrics.json
        """
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._start_time = datetime.now(timezone.utc)
        self._metrics_file = Path(metrics_file) if metrics_file else DEFAULT_METRICS_FILE

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Record one finished operation.

        Args:
            operation: The operation name (e.g., 'add_todo', 'get_vault_info')
            duration_ms: Duration in milliseconds
            success: Whether the operation succeeded
            error: Error message if the operation failed
        """
        m = self._metrics[operation]
        m.count += 1
        m.total_duration_ms += duration_ms
        m.max_duration_ms = max(m.max_duration_ms, duration_ms)

        if success:
            m.success_count += 1
        else:
            m.error_count += 1
            m.last_error = error
            m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get a snapshot of all metrics keyed by operation name."""
        result = {}
        for op, m in self._metrics.items():
            avg_duration = m.total_duration_ms / m.count if m.count > 0 else 0
            result[op] = {
                'count': m.count,
                'success_count': m.success_count,
                'error_count': m.error_count,
                'avg_duration_ms': round(avg_duration, 2),
                'max_duration_ms': round(m.max_duration_ms, 2),
                'last_error': m.last_error,
                'last_error_time': m.last_error_time.isoformat() if m.last_error_time else None
            }
        return result

    def get_summary(self) -> Dict[str, Any]:
        """Aggregate counts across all operations."""
        total_ops = sum(m.count for m in self._metrics.values())
        total_success = sum(m.success_count for m in self._metrics.values())
        total_errors = sum(m.error_count for m in self._metrics.values())

        return {
            'uptime_seconds': (datetime.now(timezone.utc) - self._start_time).total_seconds(),
            'total_operations': total_ops,
            'total_errors': total_errors,
            'overall_success_rate': total_success / total_ops if total_ops > 0 else 1.0,
        }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        self._metrics.clear()
        self._start_time = datetime.now(timezone.utc)

    def save_metrics(self) -> bool:
        """Write the current snapshot to ``metrics_file``.

        Returns:
            True if saved successfully, False otherwise.
        """
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "start_time": self._start_time.isoformat(),
                "saved_at": datetime.now(timezone.utc).isoformat(),
                "operations": self.get_metrics(),
            }
            # Atomic write via temp file
            temp_file = self._metrics_file.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_file.replace(self._metrics_file)
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
            return False


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time one tool call and record it under ``operation``.

    Keyword arguments are logged with the START line. The yielded dict
    collects result details for the END line:

        with timed_operation("search_notes", query=query) as op:
            hits = service.search_notes(query)
            op["result_count"] = len(hits)

    Exceptions are recorded as failures and re-raised.
    """
    correlation_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {"correlation_id": correlation_id}
    logger.debug(
        "[%s] START %s (%s)",
        correlation_id,
        operation,
        ", ".join(f"{k}={v}" for k, v in context.items()),
    )

    error: Optional[str] = None
    started = time.perf_counter()
    try:
        yield details
    except Exception as e:
        error = str(e)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error is None, error)
        logger.debug(
            "[%s] END %s (%.2fms) [%s] %s",
            correlation_id,
            operation,
            elapsed_ms,
            "OK" if error is None else f"ERROR: {error}",
            ", ".join(f"{k}={v}" for k, v in details.items() if k != "correlation_id"),
        )

