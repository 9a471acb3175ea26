"""Event layer - Incoming host events and deal change variants."""

from deal_relay.events.errors import MalformedEventError, RelayError
from deal_relay.events.models import (
    DealCreated,
    DealEvent,
    DealSnapshot,
    DealUpdated,
    IncomingEvent,
    NotificationEvent,
    UnrecognizedEvent,
    parse_deal_event,
)

__all__ = [
    "DealCreated",
    "DealEvent",
    "DealSnapshot",
    "DealUpdated",
    "IncomingEvent",
    "MalformedEventError",
    "NotificationEvent",
    "RelayError",
    "UnrecognizedEvent",
    "parse_deal_event",
]
