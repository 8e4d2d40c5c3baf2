"""Observation data models package."""

from .capture import (
    CapturedEvent,
    EventSource,
    LogEntry,
    LogLevel,
)

__all__ = [
    'CapturedEvent',
    'EventSource',
    'LogEntry',
    'LogLevel',
]
