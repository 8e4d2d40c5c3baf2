"""Pydantic models for observed dataLayer activity.

This module defines the records produced during an observation session:
raw log buffer entries as read from the browser, and the classified
CapturedEvent records that end up in the event store and the final report.
"""

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator


class EventSource(str, Enum):
    """Capture strategy that produced an event."""
    CONSOLE_LOG = "console_log"
    PERFORMANCE_LOG = "performance_log"
    CONSOLE_API = "console_api"
    INJECTED_PUSH = "injected_push"
    FINAL_SNAPSHOT = "final_snapshot"


class LogLevel(str, Enum):
    """Log buffer levels, named the way Chrome's logging preferences name them."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    SEVERE = "SEVERE"


def _epoch_ms_to_datetime(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    return value


class LogEntry(BaseModel):
    """Single entry drained from a browser log buffer."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default=LogLevel.INFO.value, description="Log level")
    message: str = Field(description="Log line text")
    timestamp: float = Field(
        default_factory=lambda: datetime.now(timezone.utc).timestamp() * 1000.0,
        description="Milliseconds since the epoch, as reported by the browser"
    )


class CapturedEvent(BaseModel):
    """A classified observation, immutable once stored."""

    model_config = ConfigDict(frozen=True)

    source: EventSource = Field(description="Capture strategy that observed the event")
    payload: JsonValue = Field(
        default=None,
        description="JSON-compatible event body"
    )
    level: Optional[str] = Field(
        default=None,
        description="Log level or console call type, when the source has one"
    )
    observed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Wall-clock time the event was captured"
    )
    origin_timestamp: Optional[datetime] = Field(
        default=None,
        description="Timestamp reported by the browser"
    )

    @field_validator('payload', mode='before')
    @classmethod
    def copy_payload(cls, v):
        """Detach the payload from the caller's object."""
        return copy.deepcopy(v)

    @field_validator('origin_timestamp', mode='before')
    @classmethod
    def parse_origin_timestamp(cls, v):
        """Accept epoch milliseconds as reported by the browser."""
        return _epoch_ms_to_datetime(v)

    @classmethod
    def from_log_entry(
        cls,
        entry: LogEntry,
        source: EventSource,
        payload: JsonValue = None
    ) -> "CapturedEvent":
        """Create an event from a drained log buffer entry.

        Args:
            entry: Log buffer entry
            source: Channel the entry was read from
            payload: Payload override (defaults to the entry message)

        Returns:
            New CapturedEvent
        """
        if payload is None:
            payload = {"message": entry.message}
        return cls(
            source=source,
            payload=payload,
            level=entry.level,
            origin_timestamp=entry.timestamp,
        )

    def to_report_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary for reporting."""
        return self.model_dump(mode="json")
