"""Unit tests for console and page error observers."""

from unittest.mock import AsyncMock, MagicMock, PropertyMock

import pytest

from dlwatch.capture.console_observer import ConsoleObserver, PageErrorObserver
from dlwatch.capture.log_buffer import LogBuffer, LogChannel


@pytest.fixture
def mock_page():
    """Mock Playwright page."""
    page = AsyncMock()
    page.on = MagicMock()
    page.url = "https://example.com/"
    return page


@pytest.fixture
def buffer():
    return LogBuffer(LogChannel.BROWSER)


def _console_message(msg_type, text, location=None):
    message = MagicMock()
    message.type = msg_type
    message.text = text
    message.location = location if location is not None else {}
    return message


class TestConsoleObserver:
    """Tests for ConsoleObserver class."""

    def test_listener_registered(self, mock_page, buffer):
        observer = ConsoleObserver(mock_page, buffer)

        mock_page.on.assert_called_once_with("console", observer._on_console_message)

    @pytest.mark.parametrize("msg_type,level", [
        ("log", "INFO"),
        ("info", "INFO"),
        ("debug", "DEBUG"),
        ("warning", "WARNING"),
        ("error", "SEVERE"),
        ("table", "INFO"),
    ])
    def test_levels(self, mock_page, buffer, msg_type, level):
        observer = ConsoleObserver(mock_page, buffer)

        observer._on_console_message(_console_message(msg_type, "dataLayer"))

        entries = buffer.drain()
        assert entries[0].level == level
        assert observer.message_count == 1

    def test_message_carries_location(self, mock_page, buffer):
        observer = ConsoleObserver(mock_page, buffer)
        location = {"url": "https://example.com/app.js", "lineNumber": 12, "columnNumber": 4}

        observer._on_console_message(_console_message("log", "gtag fired", location))

        assert buffer.drain()[0].message == "https://example.com/app.js 12:4 gtag fired"

    def test_format_message_without_location(self):
        assert ConsoleObserver.format_message("plain", {}) == "plain"
        assert ConsoleObserver.format_message("plain", {"url": "https://a/"}) == "https://a/ plain"

    def test_bad_message_does_not_raise(self, mock_page, buffer):
        observer = ConsoleObserver(mock_page, buffer)
        message = MagicMock()
        type(message).text = PropertyMock(side_effect=RuntimeError("detached"))
        message.type = "log"

        observer._on_console_message(message)

        assert len(buffer) == 0
        assert observer.message_count == 0


class TestPageErrorObserver:
    """Tests for PageErrorObserver class."""

    def test_uncaught_error_is_severe(self, mock_page, buffer):
        observer = PageErrorObserver(mock_page, buffer)

        observer._on_page_error(Exception("dataLayer is not defined"))

        entry = buffer.drain()[0]
        assert entry.level == "SEVERE"
        assert entry.message == "https://example.com/ Uncaught dataLayer is not defined"
        assert observer.error_count == 1
        mock_page.on.assert_called_once_with("pageerror", observer._on_page_error)
