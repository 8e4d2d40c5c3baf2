"""Observation session orchestrating one capture run.

An observation session opens the browser, subscribes to console API events,
installs the push monitor, navigates, polls for the wait window, takes the
final snapshot, closes the browser and reports. The browser is closed exactly
once on every exit path: normal completion, exception and interrupt.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..models.capture import CapturedEvent
from .classifier import EventClassifier
from .error_handling import (
    CaptureComponent,
    CaptureErrorHandler,
    ErrorSeverity,
)
from .harvester import HarvestStats, LogHarvester
from .injector import DEFAULT_MAX_DEPTH, DEFAULT_QUEUE_NAME, DataLayerInjector
from .reporting import EventReporter, ReportSummary
from .store import EventStore
from .subscriber import ConsoleApiSubscriber

if TYPE_CHECKING:
    from ..capture.browser_session import BrowserSession

logger = logging.getLogger(__name__)


DEFAULT_URL = "https://developers.google.com/"
DEFAULT_WAIT_SECONDS = 10


@dataclass
class ObservationConfig:
    """Settings for one observation run."""
    url: str = DEFAULT_URL
    wait_seconds: float = DEFAULT_WAIT_SECONDS
    poll_interval: float = 1.0
    call_timeout_seconds: float = 5.0
    navigation_timeout_ms: int = 30000
    wait_until: str = "load"
    inject: bool = True
    console_api: bool = True
    queue_name: str = DEFAULT_QUEUE_NAME
    max_depth: int = DEFAULT_MAX_DEPTH
    extra_keywords: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.wait_seconds < 0:
            raise ValueError("wait_seconds must not be negative")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")


@dataclass
class ObservationResult:
    """What one run produced."""
    url: str
    final_url: Optional[str]
    events: List[CapturedEvent]
    summary: ReportSummary
    harvest: HarvestStats
    started_at: datetime
    finished_at: datetime
    navigation_timed_out: bool = False
    errors: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_observed_events(self) -> bool:
        return self.summary.has_observed_events

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'final_url': self.final_url,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat(),
            'duration_seconds': self.duration_seconds,
            'navigation_timed_out': self.navigation_timed_out,
            'summary': self.summary.to_dict(),
            'harvest': self.harvest.to_dict(),
            'errors': self.errors,
        }


class ObservationSession:
    """One-shot dataLayer observation of a single URL."""

    def __init__(
        self,
        config: ObservationConfig,
        browser_session: "BrowserSession",
        store: Optional[EventStore] = None,
        reporter: Optional[EventReporter] = None,
        error_handler: Optional[CaptureErrorHandler] = None
    ):
        """Initialize observation session.

        Args:
            config: Run settings
            browser_session: Unopened browser session, owned by this run
            store: Event store (a new one by default)
            reporter: Report writer (logs to ``dlwatch.report`` by default)
            error_handler: Sink for non-fatal failures
        """
        self.config = config
        self.browser_session = browser_session
        self.store = store or EventStore()
        self.error_handler = error_handler or CaptureErrorHandler()
        self.reporter = reporter or EventReporter(error_handler=self.error_handler)

        self.classifier = EventClassifier(config.extra_keywords)
        self.injector = DataLayerInjector(
            queue_name=config.queue_name,
            max_depth=config.max_depth,
        )
        self.subscriber = ConsoleApiSubscriber(
            self.store,
            classifier=self.classifier,
            error_handler=self.error_handler,
        )
        self.harvester = LogHarvester(
            browser_session,
            self.store,
            classifier=self.classifier,
            injector=self.injector,
            error_handler=self.error_handler,
            poll_interval=config.poll_interval,
            call_timeout_seconds=config.call_timeout_seconds,
        )

        self.final_url: Optional[str] = None
        self.navigation_timed_out = False

    def request_stop(self) -> None:
        """Stop polling early. Remaining events are still drained and reported."""
        logger.info("Stop requested")
        self.harvester.stop()

    async def run(self) -> ObservationResult:
        """Run the observation.

        Returns:
            ObservationResult with the captured events and report summary

        Raises:
            LaunchError: If the browser cannot be started (nothing is reported)
            Exception: Navigation failures other than timeouts, after the
                browser has been closed
        """
        started_at = datetime.now(timezone.utc)
        logger.info(f"Starting dataLayer monitoring for URL: {self.config.url}")

        try:
            await self.browser_session.open()
            harvest = await self._capture()
        finally:
            await self.browser_session.close()

        events = self.store.get_events()
        summary = self.reporter.report(events)

        return ObservationResult(
            url=self.config.url,
            final_url=self.final_url,
            events=events,
            summary=summary,
            harvest=harvest,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            navigation_timed_out=self.navigation_timed_out,
            errors=self.error_handler.get_error_summary(),
        )

    async def _capture(self) -> HarvestStats:
        if self.config.console_api:
            await self.subscriber.subscribe(self.browser_session)

        if self.config.inject:
            await self._install_monitor(before_navigation=True)

        await self._navigate()

        if self.config.inject:
            await self._install_monitor(before_navigation=False)

        return await self.harvester.run(self.config.wait_seconds)

    async def _install_monitor(self, before_navigation: bool) -> None:
        stage = "before navigation" if before_navigation else "after navigation"
        with self.error_handler.degrade(
            CaptureComponent.INJECTION,
            f"{self.config.queue_name} monitor injection {stage}",
            ErrorSeverity.HIGH
        ):
            await self.injector.install(self.browser_session, before_navigation=before_navigation)

    async def _navigate(self) -> None:
        try:
            self.final_url = await self.browser_session.navigate(
                self.config.url,
                timeout_ms=self.config.navigation_timeout_ms,
                wait_until=self.config.wait_until,
            )
        except PlaywrightTimeoutError:
            self.navigation_timed_out = True
            logger.warning(
                f"Navigation timeout after {self.config.navigation_timeout_ms}ms, "
                f"continuing with partial page: {self.config.url}"
            )

    def __repr__(self) -> str:
        return f"ObservationSession(url={self.config.url}, events={len(self.store)})"
