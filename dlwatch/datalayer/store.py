"""Append-only, lock-guarded store of captured events."""

import logging
from threading import Lock
from typing import Dict, Iterator, List

from ..models.capture import CapturedEvent, EventSource

logger = logging.getLogger(__name__)


class EventStore:
    """Ordered collection of CapturedEvent records.

    The polling loop and the console-API callback both append here, so every
    access goes through a single lock. Events are copied on the way in and on
    the way out, so no caller holds a reference to a stored payload.
    """

    def __init__(self):
        self._events: List[CapturedEvent] = []
        self._lock = Lock()

    def append(self, event: CapturedEvent) -> int:
        """Append an event.

        Args:
            event: Event to store

        Returns:
            1-based position of the event in the store
        """
        if not isinstance(event, CapturedEvent):
            raise TypeError(f"EventStore only accepts CapturedEvent, got {type(event).__name__}")

        with self._lock:
            self._events.append(event.model_copy(deep=True))
            position = len(self._events)

        logger.debug(f"Stored event #{position} from {event.source.value}")
        return position

    def get_events(self) -> List[CapturedEvent]:
        with self._lock:
            events = list(self._events)
        return [event.model_copy(deep=True) for event in events]

    def get_events_by_source(self, source: EventSource) -> List[CapturedEvent]:
        return [event for event in self.get_events() if event.source == source]

    def count_by_source(self) -> Dict[str, int]:
        counts = {source.value: 0 for source in EventSource}
        for event in self.get_events():
            counts[event.source.value] += 1
        return counts

    @property
    def observed_count(self) -> int:
        """Number of events seen live, i.e. excluding the final snapshot."""
        return sum(
            1 for event in self.get_events()
            if event.source != EventSource.FINAL_SNAPSHOT
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __iter__(self) -> Iterator[CapturedEvent]:
        return iter(self.get_events())

    def __repr__(self) -> str:
        return f"EventStore(events={len(self)})"
