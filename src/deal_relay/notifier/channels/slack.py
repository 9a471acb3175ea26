"""Slack incoming webhook channel implementation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class SlackWebhookChannel:
    """Slack-compatible incoming webhook channel.

    Posts a JSON body to the webhook URL. By default a single best-effort
    attempt is made; ``max_attempts`` above one enables bounded retries with
    exponential backoff.
    """

    def __init__(
        self,
        endpoint_url: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = 1,
        retry_delay: float = 1.0,
    ) -> None:
        """Initialize Slack channel.

        Args:
            endpoint_url: Incoming webhook URL.
            timeout: HTTP request timeout in seconds.
            max_attempts: Total delivery attempts per message.
            retry_delay: Base delay between attempts (exponential backoff).
        """
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.name = "slack"

    async def send(self, body: dict[str, Any]) -> bool:
        """Post a message body to the webhook.

        Args:
            body: JSON-serializable message body.

        Returns:
            True if delivery succeeded, False otherwise.
        """
        for attempt in range(self.max_attempts):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.endpoint_url,
                        json=body,
                        headers={"Content-Type": "application/json"},
                    )

                    if 200 <= response.status_code < 300:
                        logger.info("Slack message delivered successfully")
                        return True

                    logger.error(
                        f"Slack webhook failed: {response.status_code} {response.text}"
                    )

            except httpx.TimeoutException:
                logger.error(f"Slack webhook timeout (attempt {attempt + 1})")
            except httpx.HTTPError as e:
                logger.error(f"Slack webhook error: {e}")

            # Exponential backoff
            if attempt < self.max_attempts - 1:
                delay = self.retry_delay * (2**attempt)
                await asyncio.sleep(delay)

        if self.max_attempts > 1:
            logger.error("Slack delivery failed after all attempts")
        return False
