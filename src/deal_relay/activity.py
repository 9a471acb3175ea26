"""Activity tracking for the host's liveness check.

The host decides whether a component is working by asking whether an event
arrived recently and whether any errors were logged recently. This module keeps
the timestamps and error entries that question needs and mirrors them into
Prometheus counters. The staleness window itself is evaluated by the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from prometheus_client import Counter

logger = logging.getLogger(__name__)

DEFAULT_MAX_ERROR_ENTRIES = 100


# Prometheus metrics
EVENTS_RECEIVED = Counter(
    "deal_relay_events_received_total",
    "Total number of incoming events received",
    ["component"],
)

NOTIFICATIONS_EMITTED = Counter(
    "deal_relay_notifications_emitted_total",
    "Total number of notification events emitted by the deal filter",
)

DISPATCH_TOTAL = Counter(
    "deal_relay_dispatch_total",
    "Webhook dispatch attempts by outcome",
    ["outcome"],
)

ERRORS_TOTAL = Counter(
    "deal_relay_errors_total",
    "Total number of error log entries recorded",
    ["component"],
)


@dataclass(frozen=True)
class ErrorLogEntry:
    """A single error recorded against an event."""

    message: str
    event_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ActivityLog:
    """Receipt timestamps and error log for one component.

    Example:
        ```python
        activity = ActivityLog("deal_filter")
        activity.record_receipt("evt-1")
        activity.record_error("missing 'current'", event_id="evt-2")

        activity.last_receive_at
        activity.errors_since(cutoff)
        ```
    """

    def __init__(self, component: str, *, max_error_entries: int = DEFAULT_MAX_ERROR_ENTRIES) -> None:
        """Initialize the activity log.

        Args:
            component: Name used as the metric label.
            max_error_entries: Number of most recent error entries to keep.
        """
        self.component = component
        self.max_error_entries = max_error_entries
        self.last_receive_at: datetime | None = None
        self.last_event_created_at: datetime | None = None
        self.events_received = 0
        self.events_created = 0
        self._errors: list[ErrorLogEntry] = []

    @property
    def errors(self) -> list[ErrorLogEntry]:
        """Recorded error entries, oldest first."""
        return list(self._errors)

    def record_receipt(self, event_id: str) -> None:
        """Record that an incoming event was received."""
        self.last_receive_at = datetime.now(UTC)
        self.events_received += 1
        EVENTS_RECEIVED.labels(component=self.component).inc()
        logger.debug(f"{self.component} received event {event_id}")

    def record_emitted(self) -> None:
        """Record that a notification event was created."""
        self.last_event_created_at = datetime.now(UTC)
        self.events_created += 1
        NOTIFICATIONS_EMITTED.inc()

    def record_dispatch(self, success: bool) -> None:
        """Record the outcome of one webhook dispatch."""
        DISPATCH_TOTAL.labels(outcome="success" if success else "failure").inc()

    def record_error(self, message: str, *, event_id: str | None = None) -> ErrorLogEntry:
        """Append an entry to the error log.

        Args:
            message: Description of the error.
            event_id: Id of the event the error belongs to, if any.

        Returns:
            The recorded entry.
        """
        entry = ErrorLogEntry(message=message, event_id=event_id)
        self._errors.append(entry)
        if len(self._errors) > self.max_error_entries:
            self._errors = self._errors[-self.max_error_entries :]
        ERRORS_TOTAL.labels(component=self.component).inc()
        return entry

    def errors_since(self, cutoff: datetime) -> list[ErrorLogEntry]:
        """Return error entries created at or after ``cutoff``."""
        return [entry for entry in self._errors if entry.created_at >= cutoff]

    def snapshot(self) -> dict[str, Any]:
        """Get a serializable summary for the host."""
        return {
            "component": self.component,
            "last_receive_at": (
                self.last_receive_at.isoformat() if self.last_receive_at else None
            ),
            "last_event_created_at": (
                self.last_event_created_at.isoformat() if self.last_event_created_at else None
            ),
            "events_received": self.events_received,
            "events_created": self.events_created,
            "error_count": len(self._errors),
        }
