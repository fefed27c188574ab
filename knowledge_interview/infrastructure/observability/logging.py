import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "knowledge-interview"
) -> None:
    """Setup structured logging configuration"""

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
        add_service_context,
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


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.utcnow().isoformat()

    # Request-scoped identifiers bound by the API layer
    context = structlog.contextvars.get_contextvars()
    for key in ("request_id", "user_id", "tab_id"):
        if key in context and key not in event_dict:
            event_dict[key] = context[key]

    return event_dict


class InterviewLogger:
    """Specialized logger for interview workflow operations"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_workflow_transition(
        self,
        session_id: str,
        from_state: str,
        to_state: str,
        event: Optional[str] = None,
        state_summary: Optional[Dict[str, Any]] = None
    ):
        """Log workflow state transitions"""

        self.logger.info(
            "workflow_transition",
            session_id=session_id,
            from_state=from_state,
            to_state=to_state,
            trigger=event,
            state_summary=state_summary or {}
        )

    def log_provider_call(
        self,
        operation: str,
        attempt: int,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log a text generation attempt"""

        log = self.logger.info if success else self.logger.warning
        log(
            "provider_call",
            operation=operation,
            attempt=attempt,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_context_compaction(
        self,
        method: str,
        original_length: int,
        compacted_length: int,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log context compaction metrics"""

        self.logger.info(
            "context_compaction",
            method=method,
            original_length=original_length,
            compacted_length=compacted_length,
            compression_ratio=round(compacted_length / original_length, 3) if original_length else 1.0,
            details=details or {}
        )

    def log_session_event(
        self,
        action: str,
        user_id: str,
        tab_id: str,
        session_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log session lifecycle events"""

        self.logger.info(
            "session_event",
            action=action,
            user_id=user_id,
            tab_id=tab_id,
            session_id=session_id,
            details=details or {}
        )


interview_logger = InterviewLogger("knowledge_interview")


class InterviewMetrics:
    """In-process provider latencies and event counters, reported by /health"""

    def __init__(self):
        self.provider_calls: Dict[str, Dict[str, float]] = {}
        self.counters: Dict[str, int] = {}

    def record_provider_call(self, operation: str, duration_ms: float, success: bool = True):
        """Record one text generation attempt"""

        stats = self.provider_calls.setdefault(
            operation, {"attempts": 0, "failures": 0, "succeeded_ms": 0.0, "max_ms": 0.0}
        )
        stats["attempts"] += 1
        stats["max_ms"] = max(stats["max_ms"], duration_ms)
        if success:
            stats["succeeded_ms"] += duration_ms
        else:
            stats["failures"] += 1

    def increment(self, name: str, value: int = 1):
        self.counters[name] = self.counters.get(name, 0) + value
        interview_logger.logger.debug("metric", name=name, value=self.counters[name])

    def summary(self) -> Dict[str, Any]:
        provider = {}
        for operation, stats in self.provider_calls.items():
            succeeded = stats["attempts"] - stats["failures"]
            provider[operation] = {
                "attempts": int(stats["attempts"]),
                "failures": int(stats["failures"]),
                "avg_success_ms": round(stats["succeeded_ms"] / succeeded, 2) if succeeded else 0,
                "max_ms": round(stats["max_ms"], 2)
            }
        return {"provider": provider, "counters": dict(self.counters)}


metrics = InterviewMetrics()
