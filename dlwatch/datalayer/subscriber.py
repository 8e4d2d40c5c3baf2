"""Console-API subscriber.

Listens to DevTools ``Runtime.consoleAPICalled`` events for the lifetime of
an observation session and stores matching calls as ``console_api`` events.
The callback runs on Playwright's event dispatcher, in parallel with the
polling loop; both append to the same lock-guarded EventStore.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..models.capture import CapturedEvent, EventSource
from .classifier import EventClassifier
from .error_handling import (
    CaptureComponent,
    CaptureErrorHandler,
    ErrorSeverity,
)
from .store import EventStore

if TYPE_CHECKING:
    from ..capture.browser_session import BrowserSession

logger = logging.getLogger(__name__)


CONSOLE_API_EVENT = "Runtime.consoleAPICalled"


def resolve_remote_object(remote_object: Optional[Dict[str, Any]]) -> Any:
    """Resolve a DevTools RemoteObject to a plain value.

    Uses ``value`` when the object was serialized by value, then
    ``unserializableValue`` (``NaN``, ``-0``, bigint literals), then the
    human-readable ``description`` of objects passed by reference.
    """
    if not remote_object:
        return None
    if 'value' in remote_object:
        return remote_object['value']
    if 'unserializableValue' in remote_object:
        return remote_object['unserializableValue']
    return remote_object.get('description')


class ConsoleApiSubscriber:
    """Records dataLayer-related console calls pushed over DevTools."""

    def __init__(
        self,
        store: EventStore,
        classifier: Optional[EventClassifier] = None,
        error_handler: Optional[CaptureErrorHandler] = None
    ):
        self.store = store
        self.classifier = classifier or EventClassifier()
        self.error_handler = error_handler or CaptureErrorHandler()
        self.active = False
        self.seen_count = 0
        self.matched_count = 0

    async def subscribe(self, session: "BrowserSession") -> bool:
        """Subscribe to console API calls.

        Returns:
            True if subscribed, False if the DevTools channel is unavailable
            and the session continues with polling only
        """
        with self.error_handler.degrade(
            CaptureComponent.SUBSCRIPTION,
            "console API subscription",
            ErrorSeverity.MEDIUM
        ) as outcome:
            await session.subscribe(CONSOLE_API_EVENT, self.handle_event)

        self.active = not outcome.error_occurred
        if self.active:
            logger.info("Subscribed to DevTools console API events")
        return self.active

    def handle_event(self, params: Dict[str, Any]) -> None:
        """Callback for ``Runtime.consoleAPICalled``."""
        with self.error_handler.degrade(
            CaptureComponent.SUBSCRIPTION,
            "console API event",
            ErrorSeverity.LOW
        ):
            self.seen_count += 1
            args: List[Dict[str, Any]] = params.get('args') or []
            if not args:
                return

            first = resolve_remote_object(args[0])
            if not self.classifier.is_console_api_match(first):
                return

            call_type = params.get('type', 'log')
            event = CapturedEvent(
                source=EventSource.CONSOLE_API,
                payload={
                    'type': call_type,
                    'args': [resolve_remote_object(arg) for arg in args],
                },
                level=call_type,
                origin_timestamp=params.get('timestamp'),
            )
            self.store.append(event)
            self.matched_count += 1
            logger.debug(f"Console API event captured: {call_type}")

    def __repr__(self) -> str:
        return (
            f"ConsoleApiSubscriber(active={self.active}, "
            f"seen={self.seen_count}, matched={self.matched_count})"
        )
