"""Webhook channel implementations."""

from deal_relay.notifier.channels.slack import SlackWebhookChannel

__all__ = [
    "SlackWebhookChannel",
]
