"""Polling loop over the browser log buffers and the push monitor.

Every tick drains, in order:

1. the ``browser`` channel, keeping lines the classifier relates to the
   dataLayer (``console_log`` events);
2. the ``performance`` channel, keeping Google tag network traffic
   (``performance_log`` events). The channel is optional; when the browser
   does not provide it the harvester notes it once and skips it;
3. the push monitor accumulator (``injected_push`` events, in push order).

After the wait window closes, or a stop is requested, one final drain pass
runs and a single ``final_snapshot`` event is recorded.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Set

from ..capture.log_buffer import LogChannel
from ..models.capture import CapturedEvent, EventSource, LogEntry
from .classifier import EventClassifier
from .error_handling import (
    CaptureComponent,
    CaptureErrorHandler,
    ErrorSeverity,
    LogChannelUnavailable,
)
from .injector import DataLayerInjector
from .store import EventStore

if TYPE_CHECKING:
    from ..capture.browser_session import BrowserSession

logger = logging.getLogger(__name__)


@dataclass
class HarvestStats:
    """Outcome of one harvest run."""
    polls: int = 0
    interrupted: bool = False
    events_by_source: Dict[str, int] = field(default_factory=dict)
    unavailable_channels: List[str] = field(default_factory=list)

    def add(self, source: EventSource, count: int = 1) -> None:
        self.events_by_source[source.value] = self.events_by_source.get(source.value, 0) + count

    @property
    def total_events(self) -> int:
        return sum(self.events_by_source.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'polls': self.polls,
            'interrupted': self.interrupted,
            'events_by_source': dict(self.events_by_source),
            'total_events': self.total_events,
            'unavailable_channels': list(self.unavailable_channels),
        }


def parse_performance_message(line: str) -> Any:
    """Parse a performance log line, falling back to ``{"message": line}``."""
    try:
        parsed = json.loads(line)
    except (TypeError, ValueError):
        return {"message": line}
    if isinstance(parsed, (dict, list)):
        return parsed
    return {"message": line}


class LogHarvester:
    """Polls log buffers and the push monitor into the event store."""

    def __init__(
        self,
        session: "BrowserSession",
        store: EventStore,
        classifier: Optional[EventClassifier] = None,
        injector: Optional[DataLayerInjector] = None,
        error_handler: Optional[CaptureErrorHandler] = None,
        poll_interval: float = 1.0,
        call_timeout_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize harvester.

        Args:
            session: Open browser session
            store: Store receiving captured events
            classifier: Keyword rules for log lines
            injector: Push monitor to drain and snapshot
            error_handler: Sink for non-fatal failures
            poll_interval: Seconds between ticks
            call_timeout_seconds: Upper bound for a single session call
            clock: Monotonic clock, replaceable in tests
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

        self.session = session
        self.store = store
        self.classifier = classifier or EventClassifier()
        self.injector = injector or DataLayerInjector()
        self.error_handler = error_handler or CaptureErrorHandler()
        self.poll_interval = poll_interval
        self.call_timeout_seconds = call_timeout_seconds
        self.clock = clock

        self.stats = HarvestStats()
        self._unavailable_channels: Set[str] = set()
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        """Request a graceful early stop; the final drain and snapshot still run."""
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    async def run(self, wait_seconds: float) -> HarvestStats:
        """Poll until the wait window closes, then drain and snapshot once.

        Args:
            wait_seconds: Length of the observation window

        Returns:
            Harvest statistics
        """
        start = self.clock()
        logger.info(f"Waiting {wait_seconds} seconds to capture dataLayer events...")

        while not self.stop_requested:
            elapsed = self.clock() - start
            if elapsed >= wait_seconds:
                break

            await self.drain_once()
            self.stats.polls += 1

            remaining = wait_seconds - (self.clock() - start)
            if remaining <= 0:
                break
            if not await self._sleep(min(self.poll_interval, remaining)):
                break

        if self.stop_requested:
            self.stats.interrupted = True
            logger.info("Capture stopped early, collecting remaining events")

        await self.drain_once()
        await self.take_final_snapshot()

        logger.info(
            f"Harvest finished after {self.stats.polls} polls: {self.stats.events_by_source}"
        )
        return self.stats

    async def _sleep(self, seconds: float) -> bool:
        """Sleep until the next tick. Returns False if the loop should end."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        except asyncio.CancelledError:
            self._stop_event.set()
            return False
        return False

    async def _bounded(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self.call_timeout_seconds)

    async def drain_once(self) -> int:
        """Run one drain pass over every source.

        Returns:
            Number of events stored by this pass
        """
        before = len(self.store)

        for entry in await self._read_channel(LogChannel.BROWSER):
            self._classify_console_entry(entry)

        for entry in await self._read_channel(LogChannel.PERFORMANCE):
            self._classify_performance_entry(entry)

        if self.injector.installed:
            await self._drain_injected()

        return len(self.store) - before

    async def _read_channel(self, channel: str) -> List[LogEntry]:
        if channel in self._unavailable_channels:
            return []

        entries: List[LogEntry] = []
        with self.error_handler.degrade(
            CaptureComponent.LOG_READ,
            f"{channel} log read",
            ErrorSeverity.MEDIUM
        ):
            try:
                entries = await self._bounded(self.session.read_log_buffer(channel))
            except LogChannelUnavailable:
                self._unavailable_channels.add(channel)
                self.stats.unavailable_channels.append(channel)
                logger.debug(f"Log channel '{channel}' not available, skipping")
        return entries

    def _classify_console_entry(self, entry: LogEntry) -> None:
        with self.error_handler.degrade(
            CaptureComponent.CLASSIFICATION,
            "console log classification",
            ErrorSeverity.LOW
        ):
            if self.classifier.is_console_log_match(entry.message):
                self.store.append(CapturedEvent.from_log_entry(entry, EventSource.CONSOLE_LOG))
                self.stats.add(EventSource.CONSOLE_LOG)

    def _classify_performance_entry(self, entry: LogEntry) -> None:
        with self.error_handler.degrade(
            CaptureComponent.CLASSIFICATION,
            "performance log classification",
            ErrorSeverity.LOW
        ):
            if self.classifier.is_performance_log_match(entry.message):
                self.store.append(CapturedEvent.from_log_entry(
                    entry,
                    EventSource.PERFORMANCE_LOG,
                    payload=parse_performance_message(entry.message),
                ))
                self.stats.add(EventSource.PERFORMANCE_LOG)

    async def _drain_injected(self) -> None:
        entries: List[Dict[str, Any]] = []
        with self.error_handler.degrade(
            CaptureComponent.INJECTION,
            "push monitor drain",
            ErrorSeverity.MEDIUM
        ):
            entries = await self._bounded(self.injector.drain(self.session))

        for entry in entries:
            with self.error_handler.degrade(
                CaptureComponent.CLASSIFICATION,
                "pushed event conversion",
                ErrorSeverity.LOW
            ):
                self.store.append(CapturedEvent(
                    source=EventSource.INJECTED_PUSH,
                    payload=entry.get('data'),
                    origin_timestamp=entry.get('timestamp'),
                ))
                self.stats.add(EventSource.INJECTED_PUSH)

    async def take_final_snapshot(self) -> CapturedEvent:
        """Record the end-of-run snapshot as a single event.

        The event is recorded even if the read fails, with empty lists and an
        ``error`` field.
        """
        payload: Dict[str, Any] = {
            'dataLayer': [],
            'monitorCaptured': [],
            'queueExists': False,
        }

        with self.error_handler.degrade(
            CaptureComponent.SNAPSHOT,
            "final dataLayer snapshot",
            ErrorSeverity.HIGH
        ) as outcome:
            payload = await self._bounded(self.injector.snapshot(self.session))

        if outcome.error_occurred:
            payload['error'] = str(outcome.exception) or type(outcome.exception).__name__
        else:
            logger.info(
                f"Current dataLayer content extracted: {len(payload['dataLayer'])} events"
            )

        event = CapturedEvent(source=EventSource.FINAL_SNAPSHOT, payload=payload)
        self.store.append(event)
        self.stats.add(EventSource.FINAL_SNAPSHOT)
        return event

    def __repr__(self) -> str:
        return f"LogHarvester(polls={self.stats.polls}, interval={self.poll_interval})"
