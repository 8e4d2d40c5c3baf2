"""Keyword classification of observed log lines and console calls.

All matching is case-insensitive substring matching. None, empty input and
values that cannot be stringified never match and never raise.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Tuple

from .injector import CAPTURE_ECHO_PREFIX

DATALAYER_KEYWORDS: Tuple[str, ...] = (
    "datalayer",
    "gtag",
    "google tag manager",
    "gtm",
    "ga(",
    "google-analytics",
    "_gaq",
    "datalayer.push",
)

# Every term of a group must be present.
DATALAYER_COMPOUND_RULES: Tuple[Tuple[str, ...], ...] = (
    ("event", "track"),
)

TAG_NETWORK_KEYWORDS: Tuple[str, ...] = (
    "gtag",
    "google-analytics",
    "googletagmanager",
)

CONSOLE_API_KEYWORDS: Tuple[str, ...] = (
    "datalayer",
    "gtag",
)


def stringify(value: Any) -> str:
    """Render a console argument or payload as text for matching."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


@dataclass(frozen=True)
class ClassificationRule:
    """Fixed set of case-insensitive keyword tests, combined with OR."""

    name: str
    keywords: Tuple[str, ...] = ()
    compound: Tuple[Tuple[str, ...], ...] = ()
    extra_keywords: Tuple[str, ...] = field(default=())

    def matches(self, text: Optional[str]) -> bool:
        if not text:
            return False
        try:
            lowered = text.lower()
        except AttributeError:
            return False

        for keyword in self.keywords + self.extra_keywords:
            if keyword.lower() in lowered:
                return True

        for group in self.compound:
            if all(term.lower() in lowered for term in group):
                return True

        return False

    def with_extra_keywords(self, keywords: Iterable[str]) -> "ClassificationRule":
        extra = tuple(k for k in keywords if k)
        return ClassificationRule(
            name=self.name,
            keywords=self.keywords,
            compound=self.compound,
            extra_keywords=self.extra_keywords + extra,
        )


DATALAYER_RULE = ClassificationRule(
    name="datalayer",
    keywords=DATALAYER_KEYWORDS,
    compound=DATALAYER_COMPOUND_RULES,
)

TAG_NETWORK_RULE = ClassificationRule(name="tag_network", keywords=TAG_NETWORK_KEYWORDS)

CONSOLE_API_RULE = ClassificationRule(name="console_api", keywords=CONSOLE_API_KEYWORDS)


def is_datalayer_related(message: Optional[str]) -> bool:
    """Check whether a console log line relates to the dataLayer or Google tags."""
    return DATALAYER_RULE.matches(message)


def is_tag_network_traffic(message: Optional[str]) -> bool:
    """Check whether a performance log line involves Google tag endpoints."""
    return TAG_NETWORK_RULE.matches(message)


def console_argument_matches(value: Any) -> bool:
    """Check the resolved first argument of a console call."""
    try:
        return CONSOLE_API_RULE.matches(stringify(value))
    except Exception:
        return False


class EventClassifier:
    """Bundle of the three rules used by an observation session.

    Extra keywords from configuration are added to the console log rule and
    the console-API rule; the network rule stays fixed. Lines echoed by the
    push monitor match neither console rule: those pushes are stored once,
    as ``injected_push`` events.
    """

    def __init__(
        self,
        extra_keywords: Optional[Iterable[str]] = None,
        ignore_prefix: Optional[str] = CAPTURE_ECHO_PREFIX
    ):
        extra = list(extra_keywords or [])
        self.console_log_rule = DATALAYER_RULE.with_extra_keywords(extra)
        self.performance_log_rule = TAG_NETWORK_RULE
        self.console_api_rule = CONSOLE_API_RULE.with_extra_keywords(extra)
        self.ignore_prefix = ignore_prefix

    def is_monitor_echo(self, text: Optional[str]) -> bool:
        return bool(self.ignore_prefix and text and self.ignore_prefix in text)

    def is_console_log_match(self, message: Optional[str]) -> bool:
        if self.is_monitor_echo(message):
            return False
        return self.console_log_rule.matches(message)

    def is_performance_log_match(self, message: Optional[str]) -> bool:
        return self.performance_log_rule.matches(message)

    def is_console_api_match(self, value: Any) -> bool:
        try:
            text = stringify(value)
            if self.is_monitor_echo(text):
                return False
            return self.console_api_rule.matches(text)
        except Exception:
            return False

    def __repr__(self) -> str:
        return f"EventClassifier(extra_keywords={list(self.console_log_rule.extra_keywords)})"
