"""DataLayer observation for dlwatch.

Main Components:
- Classifier: keyword rules deciding which log lines relate to the dataLayer
- Injector: in-page monitor wrapping ``dataLayer.push``
- Subscriber: DevTools ``Runtime.consoleAPICalled`` listener
- Harvester: polling loop over log buffers and the push monitor
- Store and Reporter: append-only event store and the numbered report
- Session: orchestration of a single observation run
- Error handling: the shared degradation path for non-fatal failures

Usage:
    from dlwatch.capture import BrowserSession
    from dlwatch.datalayer import ObservationConfig, ObservationSession

    session = ObservationSession(ObservationConfig(url="https://example.com"), BrowserSession())
    result = await session.run()
"""

from .error_handling import (
    CaptureComponent,
    CaptureErrorHandler,
    CaptureErrorRecord,
    DLWatchError,
    ErrorSeverity,
    InjectionError,
    LaunchError,
    LogChannelUnavailable,
    SubscriptionUnavailable,
    graceful_degradation,
)
from .classifier import (
    ClassificationRule,
    EventClassifier,
    console_argument_matches,
    is_datalayer_related,
    is_tag_network_traffic,
)
from .store import EventStore
from .reporting import EventReporter, ReportSummary
from .injector import DataLayerInjector
from .subscriber import ConsoleApiSubscriber
from .harvester import HarvestStats, LogHarvester
from .session import ObservationConfig, ObservationResult, ObservationSession

__all__ = [
    # Errors
    "CaptureComponent",
    "CaptureErrorHandler",
    "CaptureErrorRecord",
    "DLWatchError",
    "ErrorSeverity",
    "InjectionError",
    "LaunchError",
    "LogChannelUnavailable",
    "SubscriptionUnavailable",
    "graceful_degradation",

    # Classification
    "ClassificationRule",
    "EventClassifier",
    "console_argument_matches",
    "is_datalayer_related",
    "is_tag_network_traffic",

    # Capture
    "EventStore",
    "EventReporter",
    "ReportSummary",
    "DataLayerInjector",
    "ConsoleApiSubscriber",
    "HarvestStats",
    "LogHarvester",

    # Orchestration
    "ObservationConfig",
    "ObservationResult",
    "ObservationSession",
]
