"""Formatted output of captured events at the end of a session.

The report is written through logging, one pretty-printed JSON block per
event, numbered from 1 and bounded by start and end markers:

    === CAPTURED DATALAYER EVENTS ===
    Event 1: {
      "source": "injected_push",
      ...
    }
    === END OF CAPTURED EVENTS ===
    Total events captured: 3 (live: 2, snapshot: 1)
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..models.capture import CapturedEvent, EventSource
from .error_handling import CaptureComponent, CaptureErrorHandler, ErrorSeverity

logger = logging.getLogger(__name__)

report_logger = logging.getLogger("dlwatch.report")

START_MARKER = "=== CAPTURED DATALAYER EVENTS ==="
END_MARKER = "=== END OF CAPTURED EVENTS ==="
NO_EVENTS_MESSAGE = "No dataLayer events captured."


@dataclass
class ReportSummary:
    """Counts describing a rendered report."""
    total_events: int = 0
    observed_events: int = 0
    snapshot_events: int = 0
    formatting_failures: int = 0
    by_source: Dict[str, int] = field(default_factory=dict)

    @property
    def has_observed_events(self) -> bool:
        return self.observed_events > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_events': self.total_events,
            'observed_events': self.observed_events,
            'snapshot_events': self.snapshot_events,
            'formatting_failures': self.formatting_failures,
            'by_source': dict(self.by_source),
        }


class EventReporter:
    """Renders captured events as numbered JSON blocks."""

    def __init__(
        self,
        emit: Optional[Callable[[str], None]] = None,
        indent: int = 2,
        error_handler: Optional[CaptureErrorHandler] = None
    ):
        """Initialize reporter.

        Args:
            emit: Line sink, defaults to the ``dlwatch.report`` logger at INFO
            indent: JSON indentation for each event block
            error_handler: Handler for per-event formatting failures
        """
        self.emit = emit or report_logger.info
        self.indent = indent
        self.error_handler = error_handler or CaptureErrorHandler()

    def format_event(self, event: CapturedEvent) -> str:
        return json.dumps(event.to_report_dict(), indent=self.indent, ensure_ascii=False)

    def render(self, events: Sequence[CapturedEvent]) -> List[str]:
        """Render the report as a list of lines (blocks may span lines).

        Args:
            events: Events in insertion order

        Returns:
            Report lines, markers and final count included
        """
        lines, _ = self._render(events)
        return lines

    def report(self, events: Sequence[CapturedEvent]) -> ReportSummary:
        """Render and emit the report.

        Args:
            events: Events in insertion order

        Returns:
            Summary of what was reported
        """
        lines, summary = self._render(events)
        for line in lines:
            self.emit(line)
        return summary

    def _render(self, events: Sequence[CapturedEvent]):
        summary = ReportSummary(by_source={source.value: 0 for source in EventSource})
        lines = [START_MARKER]

        for event in events:
            summary.by_source[event.source.value] += 1
        summary.total_events = len(events)
        summary.snapshot_events = summary.by_source[EventSource.FINAL_SNAPSHOT.value]
        summary.observed_events = summary.total_events - summary.snapshot_events

        if not summary.has_observed_events:
            lines.append(NO_EVENTS_MESSAGE)

        for index, event in enumerate(events, start=1):
            with self.error_handler.degrade(
                CaptureComponent.REPORTING,
                f"formatting event {index}",
                severity=ErrorSeverity.HIGH
            ) as outcome:
                lines.append(f"Event {index}: {self.format_event(event)}")

            if outcome.error_occurred:
                summary.formatting_failures += 1
                lines.append(f"Event {index} (raw): {event!r}")

        lines.append(END_MARKER)
        lines.append(
            f"Total events captured: {summary.total_events} "
            f"(live: {summary.observed_events}, snapshot: {summary.snapshot_events})"
        )
        return lines, summary

    def write_json(self, events: Sequence[CapturedEvent], path: Path) -> Path:
        """Write events to a JSON file as an array.

        Args:
            events: Events to write
            path: Destination file

        Returns:
            Path written
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = [event.to_report_dict() for event in events]
        path.write_text(json.dumps(data, indent=self.indent, ensure_ascii=False), encoding='utf-8')
        logger.info(f"Wrote {len(data)} events to {path}")
        return path
