"""
Structured logging for TravelBio.

Every line is a JSON object tagged with the page request it belongs to,
so a failed page render can be traced through the store calls and
fan-out workers that produced it. Store latency, error counts and
out-of-range ratings are also tallied in a process-wide collector that
the health panel displays.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

import structlog

ROOT_LOGGER_NAME = "travelbio"

LOG_DIR = Path(__file__).parent.parent / "logs"
LOG_FILE = LOG_DIR / "travelbio.log"

# Extras with these suffixes are numbers worth charting
METRIC_SUFFIXES = ("_ms", "_count", "_rate")

# Attributes every LogRecord has; anything else came in through extra=
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


# ============================================================================
# Page Request Correlation
# ============================================================================

_request_id: ContextVar[Optional[str]] = ContextVar("travelbio_request_id", default=None)


def new_request_id() -> str:
    """Start a new page request and return its short id."""
    request_id = uuid.uuid4().hex[:8]
    _request_id.set(request_id)
    return request_id


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    """Id of the page request being served, or "-" outside of one."""
    return _request_id.get() or "-"


# ============================================================================
# Formatting
# ============================================================================

def _split_extras(record: logging.LogRecord) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    context: Dict[str, Any] = {}
    measured: Dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _STANDARD_ATTRS:
            continue
        target = measured if key.endswith(METRIC_SUFFIXES) else context
        target[key] = value
    return context, measured


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Example:
    {
        "timestamp": "2026-10-19T10:30:00.000000Z",
        "level": "WARNING",
        "request_id": "3f9c2a1b",
        "component": "travelbio.aggregator",
        "message": "Out-of-range food rating 7 for country 4",
        "context": {"country_id": 4, "field": "food"},
        "metrics": {"flagged_count": 1}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "request_id": get_request_id(),
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[0] is not None:
            error_type, error, _ = record.exc_info
            entry["exception"] = {"type": error_type.__name__, "message": str(error)}

        context, measured = _split_extras(record)
        if context:
            entry["context"] = context
        if measured:
            entry["metrics"] = measured

        return json.dumps(entry, default=str)


# ============================================================================
# Setup
# ============================================================================

def setup_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_to_file: bool = False,
) -> logging.Logger:
    """
    Configure the ``travelbio`` logger tree.

    Safe to call on every Streamlit rerun: existing handlers are replaced,
    not stacked.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_output: JSON lines when True, a plain one-line format otherwise
        log_to_file: Also append to logs/travelbio.log

    Returns:
        The package root logger
    """
    if json_output:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)-8s [%(name)s] %(message)s")

    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(LOG_FILE, encoding="utf-8"))

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    return root


def configure_logging(settings) -> logging.Logger:
    """Apply the logging fields of a :class:`travelbio.config.Settings`."""
    return setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        log_to_file=settings.log_to_file,
    )


def get_logger(name: str) -> logging.Logger:
    """Logger under the package namespace, e.g. ``get_logger("ranker")``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_structlog(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog for the maintenance scripts.

    Bound key/values (``log.info("seeded", records=42)``) are rendered as
    JSON or, for an interactive terminal, as coloured console lines.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_structlog_logger(name: str = "") -> Any:
    return structlog.get_logger(name).bind(component=name)


# ============================================================================
# Call Logging
# ============================================================================

class _Stopwatch:
    def __init__(self):
        self._started = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self._started) * 1000, 2)


def log_function_call(logger: Optional[logging.Logger] = None, level: str = "DEBUG") -> Callable:
    """
    Log entry, exit and duration of a pure computation step.

    Failures are logged with their traceback and re-raised unchanged.
    """
    def decorator(func: Callable) -> Callable:
        target = logger or get_logger(func.__module__.rsplit(".", 1)[-1])
        log_level = getattr(logging, level.upper(), logging.DEBUG)
        name = func.__qualname__

        @wraps(func)
        def wrapper(*args, **kwargs):
            target.log(log_level, f"Entering {name}", extra={"function": name})
            watch = _Stopwatch()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                target.error(
                    f"{name} raised {type(e).__name__}: {e}",
                    extra={"function": name, "duration_ms": watch.elapsed_ms},
                    exc_info=True,
                )
                raise
            target.log(
                log_level,
                f"Exiting {name}",
                extra={"function": name, "duration_ms": watch.elapsed_ms},
            )
            return result

        return wrapper
    return decorator


def log_store_call(store_name: str) -> Callable:
    """
    Time a data store gateway method and record it under
    ``"<store_name>.<method>"`` in :data:`metrics`.

    A failing call is still timed, its exception type is counted, and the
    exception propagates to the page boundary.
    """
    def decorator(func: Callable) -> Callable:
        operation = f"{store_name}.{func.__name__}"
        store_logger = get_logger("store")

        @wraps(func)
        def wrapper(*args, **kwargs):
            watch = _Stopwatch()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                metrics.record_store_latency(operation, watch.elapsed_ms)
                metrics.record_error(type(e).__name__)
                store_logger.error(
                    f"{operation} failed: {e}",
                    extra={
                        "store": store_name,
                        "operation": operation,
                        "error_type": type(e).__name__,
                        "latency_ms": watch.elapsed_ms,
                    },
                )
                raise
            metrics.record_store_latency(operation, watch.elapsed_ms)
            store_logger.debug(
                f"{operation} ok",
                extra={"store": store_name, "operation": operation, "latency_ms": watch.elapsed_ms},
            )
            return result

        return wrapper
    return decorator


# ============================================================================
# Metrics
# ============================================================================

@dataclass
class LatencyStats:
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    def add(self, latency_ms: float) -> None:
        self.count += 1
        self.total_ms += latency_ms
        self.min_ms = min(self.min_ms, latency_ms)
        self.max_ms = max(self.max_ms, latency_ms)

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "total_ms": self.total_ms,
            "min_ms": self.min_ms,
            "max_ms": self.max_ms,
            "avg_ms": self.total_ms / self.count if self.count else 0,
        }


class MetricsCollector:
    """
    In-process counters shown on the health panel.

    Fan-out workers record store latency concurrently, so every update
    takes the lock.
    """

    def __init__(self):
        self._lock = Lock()
        self._store_calls: Dict[str, LatencyStats] = {}
        self._errors: Dict[str, int] = {}
        self._malformed_ratings = 0

    def record_store_latency(self, operation: str, latency_ms: float) -> None:
        with self._lock:
            self._store_calls.setdefault(operation, LatencyStats()).add(latency_ms)

    def record_error(self, error_type: str) -> None:
        with self._lock:
            self._errors[error_type] = self._errors.get(error_type, 0) + 1

    def record_malformed_rating(self, count: int = 1) -> None:
        """Count out-of-range rating values that aggregation passed through."""
        with self._lock:
            self._malformed_ratings += count

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "store_calls": {op: stats.to_dict() for op, stats in self._store_calls.items()},
                "errors": dict(self._errors),
                "malformed_ratings": self._malformed_ratings,
            }

    def reset(self) -> None:
        with self._lock:
            self._store_calls.clear()
            self._errors.clear()
            self._malformed_ratings = 0


metrics = MetricsCollector()
