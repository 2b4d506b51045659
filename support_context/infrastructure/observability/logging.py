import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "support-context"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_conversation_context,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_conversation_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add trace and customer identifiers bound to the current task"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    bound = structlog.contextvars.get_contextvars()

    trace_id = bound.get("trace_id")
    if trace_id:
        event_dict["trace_id"] = trace_id

    customer_phone = bound.get("customer_phone")
    if customer_phone and "phone" not in event_dict:
        event_dict["phone"] = customer_phone

    return event_dict


class ContextLogger:
    """Specialized logger for memory and enrichment events"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_cache_event(
        self,
        action: str,
        key: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log cache hits, misses, evictions and sweeps"""

        self.logger.debug(
            "cache_event",
            action=action,
            key=key,
            details=details or {}
        )

    def log_context_update(
        self,
        phone: str,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log context updates"""

        self.logger.debug(
            "context_update",
            phone=phone,
            action=action,
            details=details or {}
        )

    def log_enrichment_section(
        self,
        phone: str,
        section: str,
        success: bool = True,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None
    ):
        """Log the outcome of one enrichment section fetch"""

        log = self.logger.debug if success else self.logger.warning
        log(
            "enrichment_section",
            phone=phone,
            section=section,
            success=success,
            duration_ms=duration_ms,
            error=error
        )


class MetricsCollector:
    """Collect in-process counters and latencies"""

    def __init__(self):
        self.metrics: Dict[str, Any] = {}

    def record_latency(self, operation: str, duration_ms: float):
        """Record operation latency"""

        key = f"latency.{operation}"
        if key not in self.metrics:
            self.metrics[key] = {
                "count": 0,
                "sum": 0.0,
                "min": float('inf'),
                "max": 0.0
            }

        stats = self.metrics[key]
        stats["count"] += 1
        stats["sum"] += duration_ms
        stats["min"] = min(stats["min"], duration_ms)
        stats["max"] = max(stats["max"], duration_ms)

    def increment_counter(self, name: str, value: int = 1):
        """Increment a counter metric"""

        self.metrics[name] = self.metrics.get(name, 0) + value

    def get_counter(self, name: str) -> int:
        return self.metrics.get(name, 0)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics"""

        summary = {}
        for key, value in self.metrics.items():
            if isinstance(value, dict) and "count" in value:
                summary[key] = {
                    "count": value["count"],
                    "avg": value["sum"] / value["count"] if value["count"] > 0 else 0,
                    "min": value["min"] if value["min"] != float('inf') else 0,
                    "max": value["max"]
                }
            else:
                summary[key] = value

        return summary
