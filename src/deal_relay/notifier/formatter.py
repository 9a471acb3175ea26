"""Message rendering for the chat webhook."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from deal_relay.config import DispatchConfig


def _present(value: Any) -> bool:
    """True if the value is set and not only whitespace."""
    return value is not None and str(value).strip() != ""


def render_text(payload: Mapping[str, Any]) -> str:
    """Render the text of a chat message from an event payload.

    If the payload has a non-blank ``message`` it is used as is, otherwise the
    whole payload is shown so that nothing is silently dropped.
    """
    message = payload.get("message")
    if _present(message):
        return str(message)
    return str(dict(payload))


def build_body(text: str, config: DispatchConfig) -> dict[str, str]:
    """Build the JSON body of a webhook post.

    ``icon_emoji`` and ``icon_url`` are only included when set to a
    non-blank value.
    """
    body = {
        "text": text,
        "channel": config.channel,
        "username": config.identity_name,
    }

    if _present(config.icon_emoji):
        body["icon_emoji"] = config.icon_emoji.strip()
    if _present(config.icon_url):
        body["icon_url"] = config.icon_url.strip()

    return body
