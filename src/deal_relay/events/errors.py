"""Exceptions raised while reading host events."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for deal relay errors."""


class MalformedEventError(RelayError):
    """Raised when an event payload lacks a key or value the filter needs."""

    def __init__(self, event_id: str, reason: str) -> None:
        super().__init__(f"Event {event_id} is malformed: {reason}")
        self.event_id = event_id
        self.reason = reason
