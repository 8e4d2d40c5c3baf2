"""Console and page error observers feeding the browser log buffer.

This module provides ConsoleObserver and PageErrorObserver classes that turn
Playwright ``console`` and ``pageerror`` events into LogEntry records on the
``browser`` channel, formatted the way Chrome writes its console log:
source URL and position first, then the message text.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from playwright.async_api import ConsoleMessage, Page

from ..models.capture import LogEntry, LogLevel
from .log_buffer import LogBuffer

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return datetime.now(timezone.utc).timestamp() * 1000.0


class ConsoleObserver:
    """Observer for console messages from browser pages."""

    level_map = {
        'log': LogLevel.INFO,
        'info': LogLevel.INFO,
        'debug': LogLevel.DEBUG,
        'trace': LogLevel.DEBUG,
        'warning': LogLevel.WARNING,
        'warn': LogLevel.WARNING,
        'error': LogLevel.SEVERE,
        'assert': LogLevel.SEVERE,
    }

    def __init__(self, page: Page, buffer: LogBuffer):
        """Initialize console observer for a page.

        Args:
            page: Playwright page to observe
            buffer: Buffer receiving the console lines
        """
        self.page = page
        self.buffer = buffer
        self.message_count = 0

        self._setup_listener()

    def _setup_listener(self) -> None:
        self.page.on("console", self._on_console_message)
        logger.debug("Console observer listener setup complete")

    @classmethod
    def format_message(cls, text: str, location: Dict[str, Any]) -> str:
        """Prefix message text with its source location, when known."""
        url = (location or {}).get('url')
        if not url:
            return text
        line = (location or {}).get('lineNumber')
        column = (location or {}).get('columnNumber')
        if line is None:
            return f"{url} {text}"
        return f"{url} {line}:{column or 0} {text}"

    def _on_console_message(self, message: ConsoleMessage) -> None:
        try:
            level = self.level_map.get(message.type, LogLevel.INFO)
            entry = LogEntry(
                level=level.value,
                message=self.format_message(message.text, message.location),
                timestamp=_now_ms(),
            )
            self.buffer.append(entry)
            self.message_count += 1
        except Exception as e:
            logger.error(f"Error processing console message: {e}")

    def __repr__(self) -> str:
        return f"ConsoleObserver(messages={self.message_count})"


class PageErrorObserver:
    """Observer for uncaught JavaScript errors, logged as SEVERE lines."""

    def __init__(self, page: Page, buffer: LogBuffer):
        self.page = page
        self.buffer = buffer
        self.error_count = 0

        self._setup_listener()

    def _setup_listener(self) -> None:
        self.page.on("pageerror", self._on_page_error)
        logger.debug("Page error observer listener setup complete")

    def _on_page_error(self, error: Exception) -> None:
        try:
            self.buffer.append(LogEntry(
                level=LogLevel.SEVERE.value,
                message=f"{self.page.url} Uncaught {error}",
                timestamp=_now_ms(),
            ))
            self.error_count += 1
            logger.debug(f"Page error: {error}")
        except Exception as e:
            logger.error(f"Error processing page error: {e}")

    def __repr__(self) -> str:
        return f"PageErrorObserver(errors={self.error_count})"
