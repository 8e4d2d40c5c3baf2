"""Shared test fixtures and configuration for dlwatch tests."""

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dlwatch.capture.browser_session import BrowserSession
from dlwatch.capture.log_buffer import LogChannel
from dlwatch.datalayer.error_handling import (
    CaptureErrorHandler,
    LaunchError,
    LogChannelUnavailable,
    SubscriptionUnavailable,
)
from dlwatch.datalayer.injector import CAPTURE_ECHO_PREFIX
from dlwatch.datalayer.store import EventStore
from dlwatch.models.capture import CapturedEvent, EventSource, LogEntry


class FakeBrowserSession(BrowserSession):
    """Scripted stand-in for a browser session.

    Models the page side of the push monitor in Python: pushes made before the
    monitor is installed reach only the queue, pushes made afterwards are also
    recorded in the accumulator. Scheduled pushes, console lines and console
    API events are released on the first read of the browser log.
    """

    def __init__(
        self,
        pushes: Optional[List[Any]] = None,
        console_lines: Optional[List[str]] = None,
        performance_lines: Optional[List[str]] = None,
        console_api_events: Optional[List[Dict[str, Any]]] = None,
        performance: bool = True,
        devtools: bool = True,
        open_error: Optional[Exception] = None,
        navigation_error: Optional[Exception] = None,
        snapshot_error: Optional[Exception] = None,
        on_poll: Optional[Callable[[int], None]] = None
    ):
        super().__init__(call_timeout_seconds=1.0)
        self.scheduled_pushes = list(pushes or [])
        self.pending_console = list(console_lines or [])
        self.pending_performance = list(performance_lines or [])
        self.pending_console_api = list(console_api_events or [])
        self.performance = performance
        self.devtools = devtools
        self.open_error = open_error
        self.navigation_error = navigation_error
        self.snapshot_error = snapshot_error
        self.on_poll = on_poll

        self.queue: List[Any] = []
        self.captured: List[Dict[str, Any]] = []
        self.cursor = 0
        self.wrapped = False
        self.init_scripts: List[str] = []
        self.handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {}
        self.log_buffers: Dict[str, List[LogEntry]] = {LogChannel.BROWSER: [], LogChannel.PERFORMANCE: []}

        self.open_calls = 0
        self.close_calls = 0
        self.poll_calls = 0
        self.drain_calls = 0
        self.navigated_to: Optional[str] = None

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise LaunchError(f"Browser launch failed: {self.open_error}")
        self._opened = True

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True

    async def navigate(self, url: str, timeout_ms: int = 30000, wait_until: str = "load") -> str:
        if self.navigation_error is not None:
            raise self.navigation_error
        self.navigated_to = url
        if self.init_scripts:
            self.wrapped = True
        return url

    async def add_init_script(self, source: str) -> None:
        self.init_scripts.append(source)

    def page_push(self, *args: Any) -> int:
        for arg in args:
            if self.wrapped:
                self.captured.append({
                    'data': arg,
                    'timestamp': 1700000000000 + len(self.captured),
                    'seq': len(self.captured) + 1,
                })
                self._echo(CAPTURE_ECHO_PREFIX + json.dumps(arg, separators=(',', ':')))
            self.queue.append(arg)
        return len(self.queue)

    def _echo(self, text: str) -> None:
        """Console output of the monitor, as the browser log and DevTools see it."""
        self.log_buffers[LogChannel.BROWSER].append(
            LogEntry(level="INFO", message=f"https://example.com/ 1:1 {text}", timestamp=1700000000000)
        )
        handler = self.handlers.get("Runtime.consoleAPICalled")
        if handler is not None:
            handler({
                'type': 'log',
                'args': [{'type': 'string', 'value': text}],
                'timestamp': 1700000000000,
            })

    def _release_scheduled(self) -> None:
        while self.scheduled_pushes:
            self.page_push(self.scheduled_pushes.pop(0))
        for line in self.pending_console:
            self.log_buffers[LogChannel.BROWSER].append(LogEntry(level="INFO", message=line, timestamp=1700000000000))
        self.pending_console = []
        for line in self.pending_performance:
            self.log_buffers[LogChannel.PERFORMANCE].append(LogEntry(level="INFO", message=line, timestamp=1700000000000))
        self.pending_performance = []
        handler = self.handlers.get("Runtime.consoleAPICalled")
        if handler is not None:
            for event in self.pending_console_api:
                handler(event)
            self.pending_console_api = []

    async def execute_script(self, source: str, arg: Any = None) -> Any:
        if "monitorCaptured" in source:
            if self.snapshot_error is not None:
                raise self.snapshot_error
            return {
                'dataLayer': list(self.queue),
                'monitorCaptured': list(self.captured),
                'queueExists': True,
            }

        if "state.captured.slice(state.cursor)" in source:
            if not self.wrapped:
                return None
            self.drain_calls += 1
            entries = self.captured[self.cursor:]
            self.cursor = len(self.captured)
            return entries

        newly_wrapped = not self.wrapped
        self.wrapped = True
        return {'installed': True, 'wrapped': newly_wrapped, 'wraps': 1}

    async def read_log_buffer(self, channel: str) -> List[LogEntry]:
        if channel == LogChannel.BROWSER:
            self.poll_calls += 1
            self._release_scheduled()
            if self.on_poll is not None:
                self.on_poll(self.poll_calls)
        if channel == LogChannel.PERFORMANCE and not self.performance:
            raise LogChannelUnavailable(channel)
        if channel not in self.log_buffers:
            raise LogChannelUnavailable(channel)
        entries = self.log_buffers[channel]
        self.log_buffers[channel] = []
        return entries

    async def subscribe(self, event_name: str, handler: Callable[[Dict[str, Any]], None]) -> None:
        if not self.devtools:
            raise SubscriptionUnavailable("DevTools protocol not supported by engine 'firefox'")
        self.handlers[event_name] = handler


@pytest.fixture
def fake_session_factory():
    """Factory for scripted browser sessions."""
    return FakeBrowserSession


@pytest.fixture
def error_handler():
    return CaptureErrorHandler()


@pytest.fixture
def store():
    return EventStore()


@pytest.fixture
def sample_events():
    """One event per source, snapshot last."""
    return [
        CapturedEvent(
            source=EventSource.CONSOLE_LOG,
            payload={"message": "https://example.com 12:4 dataLayer ready"},
            level="INFO",
            origin_timestamp=1700000000000,
        ),
        CapturedEvent(
            source=EventSource.PERFORMANCE_LOG,
            payload={"message": {"method": "Network.requestWillBeSent", "params": {"request": {"url": "https://www.googletagmanager.com/gtm.js"}}}},
            level="INFO",
        ),
        CapturedEvent(
            source=EventSource.CONSOLE_API,
            payload={"type": "log", "args": ["gtag event", {"event": "page_view"}]},
            level="log",
        ),
        CapturedEvent(
            source=EventSource.INJECTED_PUSH,
            payload={"event": "page_view"},
            origin_timestamp=1700000000500,
        ),
        CapturedEvent(
            source=EventSource.FINAL_SNAPSHOT,
            payload={"dataLayer": [{"event": "page_view"}], "monitorCaptured": [], "queueExists": True},
        ),
    ]
