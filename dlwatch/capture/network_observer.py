"""Network observer feeding the performance log buffer.

Chrome's ``performance`` log carries DevTools ``Network.*`` events serialized
as ``{"message": {"method": ..., "params": ...}}``. NetworkObserver subscribes
to the same events on a CDP session and writes lines in that format, so the
harvester treats this channel exactly like Chrome's performance log.
"""

import json
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Dict, List

from playwright.async_api import CDPSession

from ..models.capture import LogEntry, LogLevel
from .log_buffer import LogBuffer

logger = logging.getLogger(__name__)


NETWORK_EVENTS = [
    "Network.requestWillBeSent",
    "Network.responseReceived",
    "Network.loadingFailed",
]


class NetworkObserver:
    """Writes CDP network events to a log buffer."""

    def __init__(self, cdp_session: CDPSession, buffer: LogBuffer):
        """Initialize network observer.

        Args:
            cdp_session: DevTools session attached to the observed page
            buffer: Buffer receiving the performance log lines
        """
        self.cdp_session = cdp_session
        self.buffer = buffer
        self.events: List[str] = list(NETWORK_EVENTS)
        self.event_count = 0

    async def attach(self) -> None:
        """Enable the Network domain and start listening.

        Raises:
            Exception: If the CDP session rejects ``Network.enable``
        """
        for method in self.events:
            self.cdp_session.on(method, partial(self._on_network_event, method))
        await self.cdp_session.send("Network.enable")
        logger.debug("Network observer attached")

    @staticmethod
    def format_message(method: str, params: Dict[str, Any]) -> str:
        return json.dumps({"message": {"method": method, "params": params}}, default=str)

    def _on_network_event(self, method: str, params: Dict[str, Any]) -> None:
        try:
            self.buffer.append(LogEntry(
                level=LogLevel.INFO.value,
                message=self.format_message(method, params),
                timestamp=datetime.now(timezone.utc).timestamp() * 1000.0,
            ))
            self.event_count += 1
        except Exception as e:
            logger.error(f"Error processing network event {method}: {e}")

    def __repr__(self) -> str:
        return f"NetworkObserver(events={self.event_count})"
