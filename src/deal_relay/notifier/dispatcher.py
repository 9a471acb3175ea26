"""Notification dispatcher for the chat webhook."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from deal_relay.notifier.channels.slack import SlackWebhookChannel
from deal_relay.notifier.formatter import build_body, render_text

if TYPE_CHECKING:
    from deal_relay.activity import ActivityLog
    from deal_relay.config import DispatchConfig
    from deal_relay.events.models import IncomingEvent

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    """Protocol for webhook delivery channels."""

    name: str

    async def send(self, body: dict[str, Any]) -> bool:
        """Send a message body. Returns True on success."""
        ...


@dataclass
class DispatchResult:
    """Result of dispatching one event."""

    event_id: str
    success: bool
    body: dict[str, Any] = field(default_factory=dict)
    dry_run: bool = False
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class NotificationDispatcher:
    """Sends every received event to the chat webhook as one message.

    Events whose payload has a ``message`` are shown as that message, anything
    else is shown as the whole payload. Each event yields exactly one post;
    a failed post is logged and the next event is still sent.
    """

    def __init__(
        self,
        config: DispatchConfig,
        *,
        channel: NotificationChannel | None = None,
        activity: ActivityLog | None = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            config: Validated dispatch configuration.
            channel: Delivery channel. Defaults to a SlackWebhookChannel
                built from ``config``.
            activity: Optional activity log for receipts and errors.
            dry_run: Build and log bodies without posting them.
        """
        self.config = config
        self.channel = channel or SlackWebhookChannel(
            config.endpoint_url,
            timeout=config.timeout_seconds,
            max_attempts=config.max_attempts,
        )
        self.activity = activity
        self.dry_run = dry_run

    async def dispatch(self, event: IncomingEvent) -> DispatchResult:
        """Post a single event to the webhook.

        Never raises; failures are logged and returned in the result.

        Args:
            event: Event to send.

        Returns:
            DispatchResult describing the attempt.
        """
        logger.info(f"Sending notification for event {event.id}")
        if self.activity:
            self.activity.record_receipt(event.id)

        body = build_body(render_text(event.payload), self.config)
        logger.info(f"{self.config.endpoint_url} body: {json.dumps(body)}")

        if self.dry_run:
            logger.info(f"Dry run, not posting event {event.id}")
            return DispatchResult(event_id=event.id, success=True, body=body, dry_run=True)

        error = None
        try:
            success = await self.channel.send(body)
        except Exception as e:
            success = False
            error = str(e)

        if not success:
            error = error or f"Delivery to {self.channel.name} failed"
            logger.error(f"Notification for event {event.id} not delivered: {error}")
            if self.activity:
                self.activity.record_error(error, event_id=event.id)

        if self.activity:
            self.activity.record_dispatch(success)

        return DispatchResult(event_id=event.id, success=success, body=body, error=error)

    async def receive(self, events: Iterable[IncomingEvent]) -> list[DispatchResult]:
        """Dispatch a batch of events sequentially, in order.

        Args:
            events: Events to send.

        Returns:
            List of DispatchResult for each event.
        """
        results = []
        for event in events:
            result = await self.dispatch(event)
            results.append(result)

        delivered = sum(1 for r in results if r.success)
        logger.info(f"Dispatch complete: {delivered}/{len(results)} succeeded")
        return results
