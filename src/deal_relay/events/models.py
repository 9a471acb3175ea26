"""Data models for host events and deal changes.

Raw payloads are validated once, in ``parse_deal_event``, and turned into one of
three closed variants. Everything downstream works on the typed variants and
never reaches into the raw payload again.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any

from deal_relay.events.errors import MalformedEventError

# Kind tags as sent by the host, and the Pipedrive v1 webhook equivalents.
CREATED_KINDS = frozenset({"deal added", "added.deal"})
UPDATED_KINDS = frozenset({"deal updated", "updated.deal"})


@dataclass(frozen=True)
class IncomingEvent:
    """An event delivered by the host in a batch.

    Attributes:
        id: Opaque identifier assigned by the host.
        payload: Free-form payload mapping, read-only.
        created_at: When the event was received.
    """

    id: str
    payload: Mapping[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IncomingEvent:
        """Create an IncomingEvent from the host wire form ``{id, payload}``.

        Raises:
            MalformedEventError: If ``payload`` is present but not a mapping.
        """
        event_id = str(data["id"])
        payload = data.get("payload")
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise MalformedEventError(event_id, "payload is not a mapping")
        return cls(id=event_id, payload=payload)


@dataclass(frozen=True)
class DealSnapshot:
    """State of a deal before or after a change."""

    id: str | None
    title: str
    stage_id: Any
    value: Decimal | None = None
    formatted_value: str = ""

    @classmethod
    def from_dict(
        cls,
        data: Any,
        *,
        event_id: str,
        fallback_title: str | None = None,
    ) -> DealSnapshot:
        """Create a DealSnapshot from a payload snapshot.

        Args:
            data: The ``previous`` or ``current`` mapping from the payload.
            event_id: Id of the owning event, used in error messages.
            fallback_title: Title to use when the snapshot carries none.

        Raises:
            MalformedEventError: If the snapshot is not a mapping or lacks
                a title or stage id.
        """
        if not isinstance(data, Mapping):
            raise MalformedEventError(event_id, "deal snapshot is not a mapping")

        title = data.get("title") or fallback_title
        if not title:
            raise MalformedEventError(event_id, "missing 'title'")
        if "stage_id" not in data:
            raise MalformedEventError(event_id, "missing 'stage_id'")

        raw_value = data.get("value")
        value = None
        if raw_value is not None:
            try:
                value = Decimal(str(raw_value))
            except InvalidOperation as e:
                raise MalformedEventError(event_id, f"invalid 'value' {raw_value!r}") from e

        formatted_value = data.get("formatted_value")
        if formatted_value is None:
            formatted_value = "" if raw_value is None else str(raw_value)

        deal_id = data.get("id")
        return cls(
            id=str(deal_id) if deal_id is not None else None,
            title=str(title),
            stage_id=data["stage_id"],
            value=value,
            formatted_value=str(formatted_value),
        )


@dataclass(frozen=True)
class DealCreated:
    """A deal was added."""

    event_id: str
    current: DealSnapshot


@dataclass(frozen=True)
class DealUpdated:
    """A deal was updated; both snapshots are available."""

    event_id: str
    previous: DealSnapshot
    current: DealSnapshot

    @property
    def stage_changed(self) -> bool:
        return self.previous.stage_id != self.current.stage_id

    @property
    def value_changed(self) -> bool:
        return self.previous.value != self.current.value


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Any event kind the filter does not act on."""

    event_id: str
    kind: str | None


DealEvent = DealCreated | DealUpdated | UnrecognizedEvent


@dataclass(frozen=True)
class NotificationEvent:
    """A rendered, human-readable notification emitted to the host."""

    message: str

    def to_payload(self) -> dict[str, str]:
        """Return the payload the host persists and routes downstream."""
        return {"message": self.message}


def parse_deal_event(event: IncomingEvent) -> DealEvent:
    """Classify an incoming event and validate the fields its kind requires.

    The kind is read from ``payload["kind"]`` and falls back to the Pipedrive
    webhook ``payload["event"]`` key.

    Raises:
        MalformedEventError: If a recognized kind lacks required snapshots.
    """
    payload = event.payload
    kind = payload.get("kind", payload.get("event"))
    fallback_title = payload.get("title")

    if kind in CREATED_KINDS:
        if "current" not in payload:
            raise MalformedEventError(event.id, "missing 'current'")
        current = DealSnapshot.from_dict(
            payload["current"], event_id=event.id, fallback_title=fallback_title
        )
        return DealCreated(event_id=event.id, current=current)

    if kind in UPDATED_KINDS:
        for key in ("previous", "current"):
            if key not in payload:
                raise MalformedEventError(event.id, f"missing '{key}'")
        current = DealSnapshot.from_dict(
            payload["current"], event_id=event.id, fallback_title=fallback_title
        )
        previous = DealSnapshot.from_dict(
            payload["previous"], event_id=event.id, fallback_title=current.title
        )
        return DealUpdated(event_id=event.id, previous=previous, current=current)

    return UnrecognizedEvent(event_id=event.id, kind=None if kind is None else str(kind))
