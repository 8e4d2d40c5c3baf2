"""Error handling for best-effort dataLayer capture.

Every collector in an observation session (injector, log harvester,
console-API subscriber, reporter) routes its non-fatal failures through a
single CaptureErrorHandler. The handler logs each failure at a level derived
from its severity and keeps a bounded history so the run summary can report
what degraded. Nothing is retried: one best-effort attempt per tick.

Only launch failures are fatal; they are raised as LaunchError and are never
passed through the degradation path.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity of a non-fatal capture error, mapped to a log level."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CaptureComponent(Enum):
    """Parts of the observation session that can degrade."""
    INJECTION = "injection"
    LOG_READ = "log_read"
    CLASSIFICATION = "classification"
    SUBSCRIPTION = "subscription"
    SNAPSHOT = "snapshot"
    REPORTING = "reporting"


_SEVERITY_LEVELS = {
    ErrorSeverity.LOW: logging.DEBUG,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
}


class DLWatchError(Exception):
    """Base class for dlwatch errors."""


class LaunchError(DLWatchError):
    """The browser or driver could not be started."""


class LogChannelUnavailable(DLWatchError):
    """A log buffer channel is not supported by the running browser."""

    def __init__(self, channel: str):
        super().__init__(f"Log channel not available: {channel}")
        self.channel = channel


class SubscriptionUnavailable(DLWatchError):
    """The DevTools event channel could not be opened."""


class InjectionError(DLWatchError):
    """The instrumentation script could not be installed."""


@dataclass
class CaptureErrorRecord:
    """One swallowed failure."""
    component: CaptureComponent
    operation: str
    message: str
    severity: ErrorSeverity
    exception_type: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'component': self.component.value,
            'operation': self.operation,
            'message': self.message,
            'severity': self.severity.value,
            'exception_type': self.exception_type,
            'timestamp': self.timestamp.isoformat(),
        }


class CaptureErrorHandler:
    """Centralized handling of non-fatal capture errors."""

    def __init__(self, max_error_history: int = 1000):
        """Initialize error handler.

        Args:
            max_error_history: Maximum number of errors to keep in history
        """
        self.max_error_history = max_error_history
        self.error_history: List[CaptureErrorRecord] = []
        self.error_counts: Dict[str, int] = {}
        self._lock = Lock()

    def handle_error(
        self,
        error: BaseException,
        component: CaptureComponent,
        operation: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM
    ) -> CaptureErrorRecord:
        """Log and record a swallowed error.

        Args:
            error: Exception that was caught
            component: Component where the error occurred
            operation: Short description of what was being attempted
            severity: How loudly to log it

        Returns:
            The recorded error
        """
        record = CaptureErrorRecord(
            component=component,
            operation=operation,
            message=str(error) or type(error).__name__,
            severity=severity,
            exception_type=type(error).__name__,
        )

        logger.log(
            _SEVERITY_LEVELS[severity],
            f"{operation} failed ({component.value}): {record.message}"
        )

        with self._lock:
            self.error_history.append(record)
            if len(self.error_history) > self.max_error_history:
                self.error_history.pop(0)
            key = f"{component.value}:{record.exception_type}"
            self.error_counts[key] = self.error_counts.get(key, 0) + 1

        return record

    def degrade(
        self,
        component: CaptureComponent,
        operation: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        expected_exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    ) -> "graceful_degradation":
        """Context manager that swallows and records failures of one operation."""
        return graceful_degradation(
            error_handler=self,
            component=component,
            operation_name=operation,
            severity=severity,
            expected_exceptions=expected_exceptions,
        )

    def errors_for(self, component: CaptureComponent) -> List[CaptureErrorRecord]:
        with self._lock:
            return [e for e in self.error_history if e.component == component]

    def get_error_summary(self) -> Dict[str, Any]:
        """Summarize recorded errors for the run report."""
        with self._lock:
            by_component: Dict[str, int] = {}
            for record in self.error_history:
                name = record.component.value
                by_component[name] = by_component.get(name, 0) + 1
            return {
                'total_errors': len(self.error_history),
                'by_component': by_component,
                'error_counts': dict(self.error_counts),
            }

    def clear(self) -> None:
        with self._lock:
            self.error_history.clear()
            self.error_counts.clear()


class GracefulDegradationContext:
    """Outcome of a graceful_degradation block."""

    def __init__(self):
        self.error_occurred = False
        self.exception: Optional[BaseException] = None
        self.record: Optional[CaptureErrorRecord] = None


class graceful_degradation:
    """Context manager for best-effort operations.

    Usage:
        with handler.degrade(CaptureComponent.LOG_READ, "console log read") as outcome:
            entries = await session.read_log_buffer("browser")
        if outcome.error_occurred:
            ...

    Only the expected exceptions (``Exception`` by default) are swallowed, so
    task cancellation and KeyboardInterrupt still propagate.
    """

    def __init__(
        self,
        error_handler: Optional[CaptureErrorHandler] = None,
        component: CaptureComponent = CaptureComponent.LOG_READ,
        operation_name: str = "unknown_operation",
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        expected_exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    ):
        self.error_handler = error_handler
        self.component = component
        self.operation_name = operation_name
        self.severity = severity
        self.expected_exceptions = expected_exceptions
        self.context_result: Optional[GracefulDegradationContext] = None

    def __enter__(self) -> GracefulDegradationContext:
        self.context_result = GracefulDegradationContext()
        return self.context_result

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            return False

        if not issubclass(exc_type, self.expected_exceptions):
            return False

        if self.error_handler:
            record = self.error_handler.handle_error(
                exc_value,
                component=self.component,
                operation=self.operation_name,
                severity=self.severity,
            )
        else:
            logger.log(
                _SEVERITY_LEVELS[self.severity],
                f"Graceful degradation for {self.operation_name}: {exc_value}"
            )
            record = None

        self.context_result.error_occurred = True
        self.context_result.exception = exc_value
        self.context_result.record = record
        return True
