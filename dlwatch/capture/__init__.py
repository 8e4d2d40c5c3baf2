"""Browser capture layer for dlwatch.

Launches a Playwright browser and turns its console, page error and network
activity into drainable log buffers.

Main Components:
- Browser Factory: browser launch and context creation
- Log Buffers: per-channel drainable queues of LogEntry records
- Console Observer: console messages and uncaught errors (``browser`` channel)
- Network Observer: DevTools network events (``performance`` channel)
- Browser Session: the handle an observation session drives

Usage:
    from dlwatch.capture import BrowserSession, BrowserFactory, BrowserConfig

    async with BrowserSession(BrowserFactory(BrowserConfig(headless=True))) as session:
        await session.navigate("https://example.com")
"""

from .browser_factory import (
    DEFAULT_LAUNCH_ARGS,
    BrowserConfig,
    BrowserEngineType,
    BrowserFactory,
)
from .browser_session import BrowserSession
from .console_observer import ConsoleObserver, PageErrorObserver
from .log_buffer import LogBuffer, LogChannel
from .network_observer import NetworkObserver

__all__ = [
    "DEFAULT_LAUNCH_ARGS",
    "BrowserConfig",
    "BrowserEngineType",
    "BrowserFactory",
    "BrowserSession",
    "ConsoleObserver",
    "PageErrorObserver",
    "LogBuffer",
    "LogChannel",
    "NetworkObserver",
]
