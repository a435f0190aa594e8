"""
Wide Events (Canonical Log Lines) - Structured Logging Utility

One comprehensive JSON event per operation instead of a trail of log lines:
- High-cardinality context (subject_id, entry_id, retailer, request_id)
- Business metrics (estimates generated, retailers responding, litres)
- Technical metrics and a per-step timing breakdown
- Tail sampling: errors, slow operations and critical events always emit;
  fast successes are sampled
"""

import random
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Optional

import structlog

from utils.error_codes import StructuredError
from utils.timezone import utc_now

# Configure structlog for JSON output
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Business metrics that force emission regardless of sampling
CRITICAL_EVENTS = (
    "defaults_served",
    "writes_queued",
    "writes_reconciled",
    "first_entry_changed",
)


class WideEvent:
    """
    Accumulates context throughout an operation, then emits one log event.

    Usage:
        event = WideEvent("series_rebuild", trace_id=subject_id)
        event.add_context(subject_id="car-1", manual_entries=12)

        with event.timer("estimate"):
            regenerate_estimates(manual)

        event.add_business_metric("estimates_generated", 40)
        event.emit()
    """

    def __init__(self, operation: str, request_id: Optional[str] = None, trace_id: Optional[str] = None):
        self.operation = operation
        self.context: Dict[str, Any] = {
            "operation": operation,
            "timestamp": utc_now().isoformat(),
            "start_time": time.time(),
            "request_id": request_id or str(uuid.uuid4()),
        }
        if trace_id:
            self.context["trace_id"] = trace_id

        self.logger = structlog.get_logger()

    def add_context(self, **kwargs) -> "WideEvent":
        """Add high-cardinality context fields (subject_id, entry_id, retailer, etc.)."""
        self.context.update(kwargs)
        return self

    def _add_metric(self, section: str, key: str, value: Any) -> "WideEvent":
        self.context.setdefault(section, {})[key] = value
        return self

    def add_business_metric(self, key: str, value: Any) -> "WideEvent":
        """Add business metrics (estimates generated, retailers responding, etc.)."""
        return self._add_metric("business_metrics", key, value)

    def add_error(self, error: Exception, **kwargs) -> "WideEvent":
        """Add error details to the event."""
        self.context["error"] = {
            "type": type(error).__name__,
            "message": str(error),
            "details": kwargs,
        }
        self.context["success"] = False
        return self

    def add_structured_error(self, error: StructuredError) -> "WideEvent":
        """Attach a coded error without failing the operation."""
        self.context.setdefault("errors", []).append(error.to_dict())
        return self

    def mark_success(self) -> "WideEvent":
        self.context["success"] = True
        return self

    def mark_failure(self, reason: str) -> "WideEvent":
        self.context["success"] = False
        self.context["failure_reason"] = reason
        return self

    @contextmanager
    def timer(self, operation_name: str):
        """
        Time one step of the operation.

        Usage:
            with event.timer("fetch"):
                fetch_all()

            # Outputs: {"performance_breakdown": {"fetch_ms": 342.5}}
        """
        start = time.time()
        try:
            yield
        finally:
            duration_ms = (time.time() - start) * 1000
            self._add_metric("performance_breakdown", f"{operation_name}_ms", round(duration_ms, 2))

    def set_duration(self) -> "WideEvent":
        if "start_time" in self.context:
            duration_ms = (time.time() - self.context.pop("start_time")) * 1000
            self.context["duration_ms"] = round(duration_ms, 2)
        return self

    def should_emit(self, sample_rate: float = 0.05, slow_threshold_ms: float = 1000) -> bool:
        """
        Tail sampling:
        - Always emit failures
        - Always emit slow operations (>slow_threshold_ms)
        - Always emit critical business events (defaults served, queued writes)
        - Sample the rest at sample_rate
        """
        if not self.context.get("success", True):
            return True

        if self.context.get("duration_ms", 0) > slow_threshold_ms:
            return True

        business_metrics = self.context.get("business_metrics", {})
        if any(business_metrics.get(name) for name in CRITICAL_EVENTS):
            return True

        return random.random() < sample_rate

    def emit(self, level: str = "info", force: bool = False) -> None:
        """
        Emit the wide event as a single log line.

        Args:
            level: Log level (info, warning, error)
            force: Force emission even if sampling says no
        """
        self.set_duration()

        if not force and not self.should_emit():
            return

        log_method = getattr(self.logger, level, self.logger.info)
        log_method(f"{self.operation}_complete", **self.context)


@contextmanager
def track_operation(operation: str, **initial_context):
    """
    Track an operation with a wide event that emits on exit.

    Usage:
        with track_operation("reconcile", queued=3) as event:
            event.add_business_metric("writes_reconciled", 3)
    """
    event = WideEvent(operation)
    event.add_context(**initial_context)

    try:
        yield event
        event.mark_success()
    except Exception as e:
        event.add_error(e)
        event.mark_failure(str(e))
        raise
    finally:
        event.emit(level="error" if not event.context.get("success", True) else "info", force=True)


def log_entry_event(
    entry_id: Optional[str],
    subject_id: str,
    operation: str,
    success: bool,
    **kwargs,
) -> None:
    """Log a manual entry mutation (added, updated, deleted, first toggled)."""
    event = WideEvent(f"entry_{operation}", trace_id=subject_id)
    event.add_context(entry_id=entry_id, subject_id=subject_id, **kwargs)

    if success:
        event.mark_success()
    else:
        event.mark_failure(kwargs.get("error", "Unknown error"))

    event.emit(force=True)
