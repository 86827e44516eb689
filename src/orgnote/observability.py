"""Observability utilities for orgnote.

Provides rotating file logging, operation timing and a small metrics
collector for sync commands.
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
from threading import Lock
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".orgnote" / "logs"
DEFAULT_METRICS_FILE = Path.home() / ".orgnote" / "metrics.json"

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
    """Configure persistent file logging with rotation for the ``orgnote`` logger.

    Args:
        log_dir: Directory for log files. Defaults to ~/.orgnote/logs/
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation
        backup_count: Number of rotated files to keep
        console: Also log to stderr

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger("orgnote")
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "orgnote.log"
    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
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

    root_logger.debug(f"Logging configured: {log_file}")

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


class MetricsCollector:
    """Thread-safe timing and failure counts per command.

    Counts are kept in memory and can be written to a JSON file; the CLI
    saves them when the process exits.
    """

    def __init__(self, metrics_file: Optional[Union[str, Path]] = None):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._metrics_file = Path(metrics_file) if metrics_file else DEFAULT_METRICS_FILE

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Record one run of ``operation``."""
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get a snapshot of all metrics."""
        with self._lock:
            return {
                op: {
                    "count": m.count,
                    "success_count": m.success_count,
                    "error_count": m.error_count,
                    "avg_duration_ms": round(m.total_duration_ms / m.count, 2) if m.count else 0,
                    "max_duration_ms": round(m.max_duration_ms, 2),
                    "last_error": m.last_error,
                }
                for op, m in self._metrics.items()
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._metrics.clear()

    def save_metrics(self) -> bool:
        """Write the current snapshot to the metrics file.

        Returns:
            True if saved successfully, False otherwise.
        """
        data = {
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "operations": self.get_metrics(),
        }
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
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
    """Context manager for timing and logging operations.

    Args:
        operation: Name of the operation being performed
        **context: Additional context to include in log messages

    Yields:
        A dictionary where the caller can store result info

    Example:
        with timed_operation('sync_all') as op:
            report = service.sync_all()
            op['succeeded'] = len(report.succeeded)
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {'correlation_id': correlation_id}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    success = True

    try:
        yield result_info
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, duration_ms, success, error_msg)

        result_str = ', '.join(f'{k}={v}' for k, v in result_info.items() if k != 'correlation_id')
        status = 'OK' if success else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )
