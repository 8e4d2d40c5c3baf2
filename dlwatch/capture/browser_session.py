"""Browser session handle used by an observation session.

BrowserSession owns one browser, one context and one page for the lifetime of
a run and exposes the small surface the capture components need:

    navigate(url)                    -> final URL
    execute_script(source, arg)      -> JSON-compatible value
    add_init_script(source)          -> runs before page scripts on every navigation
    read_log_buffer(channel)         -> drained LogEntry list
    subscribe(event_name, handler)   -> DevTools event subscription
    close()                          -> releases everything, once

Capabilities that depend on the engine (the ``performance`` log channel and
DevTools subscriptions need a Chromium CDP session) are probed when the
session opens and reported through ``capabilities``.

Usage:
    async with BrowserSession(BrowserFactory(BrowserConfig())) as session:
        await session.navigate("https://example.com")
        entries = await session.read_log_buffer(LogChannel.BROWSER)
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import BrowserContext, CDPSession, Page

from ..datalayer.error_handling import (
    LaunchError,
    LogChannelUnavailable,
    SubscriptionUnavailable,
)
from ..models.capture import LogEntry
from .browser_factory import BrowserFactory
from .console_observer import ConsoleObserver, PageErrorObserver
from .log_buffer import LogBuffer, LogChannel
from .network_observer import NetworkObserver

logger = logging.getLogger(__name__)


class BrowserSession:
    """Exclusively owned browser handle with scoped release."""

    def __init__(
        self,
        factory: Optional[BrowserFactory] = None,
        call_timeout_seconds: float = 5.0,
        enable_performance_log: bool = True,
        max_buffer_entries: int = 10000
    ):
        """Initialize browser session.

        Args:
            factory: Browser factory used to launch the browser
            call_timeout_seconds: Upper bound for a single script or buffer call
            enable_performance_log: Try to attach the performance log channel
            max_buffer_entries: Capacity of each log buffer
        """
        self.factory = factory or BrowserFactory()
        self.call_timeout_seconds = call_timeout_seconds
        self.enable_performance_log = enable_performance_log

        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.buffers: Dict[str, LogBuffer] = {
            LogChannel.BROWSER: LogBuffer(LogChannel.BROWSER, max_buffer_entries),
        }
        self._max_buffer_entries = max_buffer_entries
        self._cdp_session: Optional[CDPSession] = None
        self._enabled_domains: set = set()
        self._subscriptions: List[str] = []
        self._opened = False
        self._closed = False

        self.console_observer: Optional[ConsoleObserver] = None
        self.error_observer: Optional[PageErrorObserver] = None
        self.network_observer: Optional[NetworkObserver] = None

    async def open(self) -> None:
        """Launch the browser and attach log buffer observers.

        Raises:
            LaunchError: If the browser, context or page cannot be created
        """
        if self._opened:
            return
        if self._closed:
            raise LaunchError("Browser session already closed")

        try:
            await self.factory.start()
            self.context = await self.factory.create_context()
            self.page = await self.context.new_page()
        except Exception as e:
            logger.error(f"Browser launch failed: {e}")
            await self.close()
            raise LaunchError(f"Browser launch failed: {e}") from e

        self._opened = True
        self.console_observer = ConsoleObserver(self.page, self.buffers[LogChannel.BROWSER])
        self.error_observer = PageErrorObserver(self.page, self.buffers[LogChannel.BROWSER])

        if self.enable_performance_log:
            await self._attach_performance_log()

        logger.debug(f"Browser session opened with capabilities: {self.capabilities}")

    async def _attach_performance_log(self) -> None:
        try:
            cdp_session = await self._get_cdp_session()
            buffer = LogBuffer(LogChannel.PERFORMANCE, self._max_buffer_entries)
            observer = NetworkObserver(cdp_session, buffer)
            await observer.attach()
        except Exception as e:
            logger.debug(f"Performance log not available: {e}")
            return

        self.buffers[LogChannel.PERFORMANCE] = buffer
        self.network_observer = observer

    async def _get_cdp_session(self) -> CDPSession:
        if self._cdp_session is not None:
            return self._cdp_session

        if not self.factory.config.supports_cdp:
            raise SubscriptionUnavailable(
                f"DevTools protocol not supported by engine '{self.factory.config.engine}'"
            )

        page = self._require_page()
        try:
            self._cdp_session = await page.context.new_cdp_session(page)
        except Exception as e:
            raise SubscriptionUnavailable(f"Could not open DevTools session: {e}") from e
        return self._cdp_session

    def _require_page(self) -> Page:
        if self.page is None or self._closed:
            raise RuntimeError("Browser session is not open")
        return self.page

    async def navigate(self, url: str, timeout_ms: int = 30000, wait_until: str = "load") -> str:
        """Navigate the page.

        Args:
            url: Target URL
            timeout_ms: Navigation timeout
            wait_until: Playwright load state to wait for

        Returns:
            Final URL after redirects
        """
        page = self._require_page()
        response = await page.goto(url, timeout=timeout_ms, wait_until=wait_until)
        final_url = response.url if response else page.url
        logger.debug(f"Navigation completed: {final_url}")
        return final_url

    async def execute_script(self, source: str, arg: Any = None) -> Any:
        """Evaluate JavaScript in the page, bounded by the call timeout.

        Raises:
            asyncio.TimeoutError: If the evaluation overruns the call timeout
        """
        page = self._require_page()
        return await asyncio.wait_for(
            page.evaluate(source, arg),
            timeout=self.call_timeout_seconds
        )

    async def add_init_script(self, source: str) -> None:
        page = self._require_page()
        await asyncio.wait_for(
            page.add_init_script(script=source),
            timeout=self.call_timeout_seconds
        )

    async def read_log_buffer(self, channel: str) -> List[LogEntry]:
        """Drain a log buffer.

        Args:
            channel: Channel name (see LogChannel)

        Returns:
            Entries buffered since the previous read

        Raises:
            LogChannelUnavailable: If the channel is not supported
        """
        buffer = self.buffers.get(channel)
        if buffer is None:
            raise LogChannelUnavailable(channel)
        return buffer.drain()

    async def subscribe(self, event_name: str, handler: Callable[[Dict[str, Any]], None]) -> None:
        """Subscribe to a DevTools protocol event.

        The protocol domain of the event (``Runtime`` for
        ``Runtime.consoleAPICalled``) is enabled on first use.

        Raises:
            SubscriptionUnavailable: If no DevTools session can be opened
        """
        cdp_session = await self._get_cdp_session()
        cdp_session.on(event_name, handler)

        domain = event_name.split(".", 1)[0]
        if domain not in self._enabled_domains:
            try:
                await asyncio.wait_for(
                    cdp_session.send(f"{domain}.enable"),
                    timeout=self.call_timeout_seconds
                )
            except Exception as e:
                raise SubscriptionUnavailable(f"Could not enable {domain} domain: {e}") from e
            self._enabled_domains.add(domain)

        self._subscriptions.append(event_name)
        logger.debug(f"Subscribed to {event_name}")

    @property
    def capabilities(self) -> Dict[str, bool]:
        return {
            'browser_log': LogChannel.BROWSER in self.buffers,
            'performance_log': LogChannel.PERFORMANCE in self.buffers,
            'devtools': self.factory.config.supports_cdp,
        }

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    async def close(self) -> None:
        """Release the browser. Safe to call more than once; only the first call acts."""
        if self._closed:
            return
        self._closed = True

        if self._cdp_session is not None:
            try:
                await self._cdp_session.detach()
            except Exception as e:
                logger.debug(f"Error detaching DevTools session: {e}")
            self._cdp_session = None

        await self.factory.stop()
        self.page = None
        self.context = None
        logger.debug("Browser session closed")

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else ("closed" if self._closed else "new")
        return f"BrowserSession(state={state}, engine={self.factory.config.engine})"
