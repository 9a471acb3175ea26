"""Relay wiring the deal filter to the notification dispatcher.

The host normally runs the two components independently and routes events
between them. The relay does the same routing for one batch so the whole
flow can run from the command line.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from deal_relay.activity import ActivityLog
from deal_relay.events.models import IncomingEvent, NotificationEvent
from deal_relay.filter.deal_filter import DealChangeFilter
from deal_relay.filter.stages import InMemoryStageDirectory, PipedriveStageDirectory
from deal_relay.notifier.dispatcher import DispatchResult, NotificationDispatcher

if TYPE_CHECKING:
    from deal_relay.config import Settings
    from deal_relay.filter.stages import StageDirectory

logger = logging.getLogger(__name__)


@dataclass
class RelayResult:
    """Outcome of relaying one batch."""

    notifications: list[NotificationEvent] = field(default_factory=list)
    dispatch_results: list[DispatchResult] = field(default_factory=list)

    @property
    def delivered_count(self) -> int:
        return sum(1 for r in self.dispatch_results if r.success)

    @property
    def failed_count(self) -> int:
        return len(self.dispatch_results) - self.delivered_count


class Relay:
    """Filters a batch of deal events and dispatches the notifications."""

    def __init__(self, deal_filter: DealChangeFilter, dispatcher: NotificationDispatcher) -> None:
        self.deal_filter = deal_filter
        self.dispatcher = dispatcher

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        dry_run: bool = False,
        stage_directory: StageDirectory | None = None,
    ) -> Relay:
        """Build a relay from application settings.

        Args:
            settings: Validated application settings.
            dry_run: Skip posting to the webhook.
            stage_directory: Override the directory chosen from settings.
        """
        if stage_directory is None:
            filter_settings = settings.filter
            if filter_settings.api_token is not None:
                stage_directory = PipedriveStageDirectory(
                    filter_settings.api_token.get_secret_value(),
                    base_url=filter_settings.base_url,
                    timeout=settings.dispatch.timeout_seconds,
                )
            else:
                stage_directory = InMemoryStageDirectory(filter_settings.stage_names)

        deal_filter = DealChangeFilter(
            stage_directory,
            policy=settings.filter.notification_policy,
            deal_link_template=settings.filter.deal_link_template,
            activity=ActivityLog("deal_filter"),
        )
        dispatcher = NotificationDispatcher(
            settings.dispatch,
            activity=ActivityLog("dispatcher"),
            dry_run=dry_run or settings.dry_run,
        )
        return cls(deal_filter, dispatcher)

    async def process_batch(self, events: Iterable[IncomingEvent]) -> RelayResult:
        """Run one batch through the filter and dispatch what it emits.

        Each notification becomes a new event with id ``<source id>:<n>``.
        """
        result = RelayResult()
        outgoing: list[IncomingEvent] = []
        source_id = ""
        emitted: dict[str, int] = {}

        def track(batch: Iterable[IncomingEvent]) -> Iterator[IncomingEvent]:
            nonlocal source_id
            for event in batch:
                source_id = event.id
                yield event

        # The filter is lazy, so source_id is the event that produced each notification.
        for notification in self.deal_filter.receive(track(events)):
            emitted[source_id] = emitted.get(source_id, 0) + 1
            result.notifications.append(notification)
            outgoing.append(
                IncomingEvent(
                    id=f"{source_id}:{emitted[source_id]}",
                    payload=notification.to_payload(),
                )
            )

        result.dispatch_results = await self.dispatcher.receive(outgoing)
        logger.info(
            f"Relayed {len(result.notifications)} notifications, "
            f"{result.delivered_count} delivered, {result.failed_count} failed"
        )
        return result
