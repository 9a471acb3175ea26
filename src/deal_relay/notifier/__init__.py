"""Notification layer - Chat webhook delivery."""

from deal_relay.notifier.channels.slack import SlackWebhookChannel
from deal_relay.notifier.dispatcher import (
    DispatchResult,
    NotificationChannel,
    NotificationDispatcher,
)
from deal_relay.notifier.formatter import build_body, render_text

__all__ = [
    "DispatchResult",
    "NotificationChannel",
    "NotificationDispatcher",
    "SlackWebhookChannel",
    "build_body",
    "render_text",
]
