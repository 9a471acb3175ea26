"""Deal change filter.

Looks at incoming CRM deal events and decides which ones are worth surfacing.
Currently we notify when:

    - a deal is created
    - a deal moves to another stage
    - a deal changes value

Each notification is a NotificationEvent with a single rendered ``message``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from enum import Enum
from typing import TYPE_CHECKING

from deal_relay.events.errors import MalformedEventError
from deal_relay.events.models import (
    DealCreated,
    DealSnapshot,
    DealUpdated,
    NotificationEvent,
    parse_deal_event,
)
from deal_relay.filter.stages import StageNameResolver

if TYPE_CHECKING:
    from deal_relay.activity import ActivityLog
    from deal_relay.events.models import DealEvent, IncomingEvent
    from deal_relay.filter.stages import StageDirectory

logger = logging.getLogger(__name__)


class NotificationPolicy(Enum):
    """How many notifications a single event may produce."""

    ALL_CHANGES = "all_changes"
    FIRST_MATCH = "first_match"


def squish(text: str) -> str:
    """Collapse whitespace runs into single spaces and strip the ends."""
    return " ".join(text.split())


class DealChangeFilter:
    """Turns deal change events into notification events.

    Example:
        ```python
        deal_filter = DealChangeFilter(InMemoryStageDirectory({3: "Proposal"}))
        for notification in deal_filter.receive(events):
            host.emit(notification.to_payload())
        ```
    """

    def __init__(
        self,
        stage_directory: StageDirectory,
        *,
        policy: NotificationPolicy = NotificationPolicy.ALL_CHANGES,
        deal_link_template: str | None = None,
        activity: ActivityLog | None = None,
    ) -> None:
        """Initialize the filter.

        Args:
            stage_directory: Lookup used to turn stage ids into names.
            policy: ALL_CHANGES emits one notification per matching rule,
                FIRST_MATCH emits at most one, for creation or a stage move.
            deal_link_template: Optional format string with a ``{deal_id}``
                placeholder. When set, the link is appended to every message.
            activity: Optional activity log for receipts and errors.
        """
        self.stage_directory = stage_directory
        self.policy = policy
        self.deal_link_template = deal_link_template
        self.activity = activity

    def receive(self, events: Iterable[IncomingEvent]) -> Iterator[NotificationEvent]:
        """Filter a batch of incoming events.

        Events are processed in order, lazily. A malformed event is logged and
        skipped; the rest of the batch is still processed.

        Args:
            events: Incoming events in delivery order.

        Yields:
            Notification events in the order they were produced.
        """
        resolver = StageNameResolver(self.stage_directory)

        for event in events:
            logger.info(f"Received event {event.id}")
            if self.activity:
                self.activity.record_receipt(event.id)

            try:
                notifications = self.notifications_for(parse_deal_event(event), resolver)
            except (MalformedEventError, LookupError, TypeError, ValueError) as e:
                logger.error(f"Skipping event {event.id}: {e}")
                if self.activity:
                    self.activity.record_error(str(e), event_id=event.id)
                continue

            for notification in notifications:
                if self.activity:
                    self.activity.record_emitted()
                yield notification

    def notifications_for(
        self,
        deal_event: DealEvent,
        resolver: StageNameResolver | None = None,
    ) -> list[NotificationEvent]:
        """Apply the notification rules to one classified event."""
        resolver = resolver or StageNameResolver(self.stage_directory)

        if isinstance(deal_event, DealCreated):
            return [self._deal_created(deal_event.current, resolver)]

        if not isinstance(deal_event, DealUpdated):
            logger.debug(f"Ignoring event {deal_event.event_id} of kind {deal_event.kind!r}")
            return []

        notifications: list[NotificationEvent] = []
        if deal_event.stage_changed:
            notifications.append(self._stage_changed(deal_event, resolver))
            # FIRST_MATCH only watches creation and stage moves.
            if self.policy is NotificationPolicy.FIRST_MATCH:
                return notifications

        if self.policy is NotificationPolicy.ALL_CHANGES and deal_event.value_changed:
            notifications.append(self._value_changed(deal_event))
        return notifications

    def _deal_created(self, deal: DealSnapshot, resolver: StageNameResolver) -> NotificationEvent:
        return self._notification(
            f"""{deal.title} created in
                {resolver.resolve(deal.stage_id)}.""",
            deal,
        )

    def _stage_changed(self, change: DealUpdated, resolver: StageNameResolver) -> NotificationEvent:
        return self._notification(
            f"""{change.current.title} moved from
                {resolver.resolve(change.previous.stage_id)} to
                {resolver.resolve(change.current.stage_id)}.""",
            change.current,
        )

    def _value_changed(self, change: DealUpdated) -> NotificationEvent:
        return self._notification(
            f"""{change.current.title} changed value from
                {change.previous.formatted_value} to
                {change.current.formatted_value}.""",
            change.current,
        )

    def _notification(self, message: str, deal: DealSnapshot) -> NotificationEvent:
        if self.deal_link_template and deal.id is not None:
            message = f"{message} {self.deal_link_template.format(deal_id=deal.id)}"
        return NotificationEvent(message=squish(message))
