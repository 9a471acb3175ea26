"""Tests for the notification dispatcher and Slack channel."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from deal_relay.activity import ActivityLog
from deal_relay.config import DispatchConfig
from deal_relay.events.models import IncomingEvent
from deal_relay.notifier.channels.slack import SlackWebhookChannel
from deal_relay.notifier.dispatcher import DispatchResult, NotificationDispatcher

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def config() -> DispatchConfig:
    """Create a minimal dispatch configuration."""
    return DispatchConfig(
        endpoint_url="https://hooks.example/x",
        channel="#sales",
        identity_name="bot",
    )


@pytest.fixture
def mock_channel() -> MagicMock:
    """Create a mock webhook channel."""
    channel = MagicMock()
    channel.name = "slack"
    channel.send = AsyncMock(return_value=True)
    return channel


def mock_async_client(mock_client_class: MagicMock, responses: list[MagicMock]) -> AsyncMock:
    """Wire a patched httpx.AsyncClient class to return the given responses."""
    mock_client = AsyncMock()
    mock_client.post.side_effect = responses
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    mock_client_class.return_value = mock_client
    return mock_client


def response(status_code: int) -> MagicMock:
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.text = "error" if status_code >= 300 else "ok"
    return mock_response


# ============================================================================
# SlackWebhookChannel Tests
# ============================================================================


class TestSlackWebhookChannel:
    """Tests for Slack channel."""

    def test_init(self) -> None:
        """Test channel initialization."""
        channel = SlackWebhookChannel("https://hooks.example/x")

        assert channel.endpoint_url == "https://hooks.example/x"
        assert channel.timeout == 10.0
        assert channel.max_attempts == 1
        assert channel.name == "slack"

    @pytest.mark.asyncio
    async def test_send_success(self) -> None:
        """Test successful webhook post."""
        channel = SlackWebhookChannel("https://hooks.example/x")
        body = {"text": "hi", "channel": "#sales", "username": "bot"}

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_async_client(mock_client_class, [response(200)])

            result = await channel.send(body)

            assert result is True
            mock_client.post.assert_called_once_with(
                "https://hooks.example/x",
                json=body,
                headers={"Content-Type": "application/json"},
            )
            mock_client_class.assert_called_once_with(timeout=10.0)

    @pytest.mark.asyncio
    async def test_send_failure_not_retried(self) -> None:
        """Test that a failed post is attempted once by default."""
        channel = SlackWebhookChannel("https://hooks.example/x")

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_async_client(mock_client_class, [response(500), response(200)])

            result = await channel.send({"text": "hi"})

            assert result is False
            assert mock_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_send_transport_error(self) -> None:
        """Test that transport errors are reported as failure, not raised."""
        channel = SlackWebhookChannel("https://hooks.example/x")

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_async_client(mock_client_class, [httpx.ConnectError("refused")])

            assert await channel.send({"text": "hi"}) is False

    @pytest.mark.asyncio
    async def test_send_timeout(self) -> None:
        channel = SlackWebhookChannel("https://hooks.example/x", timeout=0.5)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_async_client(mock_client_class, [httpx.ReadTimeout("slow")])

            assert await channel.send({"text": "hi"}) is False
            mock_client_class.assert_called_once_with(timeout=0.5)

    @pytest.mark.asyncio
    async def test_bounded_retry(self) -> None:
        """Test retries when more than one attempt is configured."""
        channel = SlackWebhookChannel(
            "https://hooks.example/x", max_attempts=3, retry_delay=0.01
        )

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_async_client(
                mock_client_class, [response(503), response(503), response(200)]
            )

            result = await channel.send({"text": "hi"})

            assert result is True
            assert mock_client.post.call_count == 3


# ============================================================================
# NotificationDispatcher Tests
# ============================================================================


class TestNotificationDispatcher:
    """Tests for NotificationDispatcher."""

    def test_default_channel_from_config(self, config: DispatchConfig) -> None:
        dispatcher = NotificationDispatcher(config)

        assert isinstance(dispatcher.channel, SlackWebhookChannel)
        assert dispatcher.channel.endpoint_url == "https://hooks.example/x"
        assert dispatcher.channel.max_attempts == 1

    @pytest.mark.asyncio
    async def test_dispatch_message(self, config: DispatchConfig, mock_channel: MagicMock) -> None:
        """Test the body posted for a notification event."""
        dispatcher = NotificationDispatcher(config, channel=mock_channel)
        event = IncomingEvent(id="evt-1", payload={"message": "Acme Co created in Proposal."})

        result = await dispatcher.dispatch(event)

        assert isinstance(result, DispatchResult)
        assert result.success is True
        assert result.event_id == "evt-1"
        mock_channel.send.assert_awaited_once_with(
            {"text": "Acme Co created in Proposal.", "channel": "#sales", "username": "bot"}
        )

    @pytest.mark.asyncio
    async def test_dispatch_end_to_end_body(self, config: DispatchConfig) -> None:
        """Test the exact request sent through httpx."""
        dispatcher = NotificationDispatcher(config)
        event = IncomingEvent(id="evt-1", payload={"message": "Acme Co created in Proposal."})

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_async_client(mock_client_class, [response(200)])

            result = await dispatcher.dispatch(event)

        assert result.success is True
        mock_client.post.assert_called_once_with(
            "https://hooks.example/x",
            json={
                "text": "Acme Co created in Proposal.",
                "channel": "#sales",
                "username": "bot",
            },
            headers={"Content-Type": "application/json"},
        )

    @pytest.mark.asyncio
    async def test_dispatch_payload_fallback(
        self, config: DispatchConfig, mock_channel: MagicMock
    ) -> None:
        dispatcher = NotificationDispatcher(config, channel=mock_channel)
        payload = {"kind": "deal added", "id": 3}

        result = await dispatcher.dispatch(IncomingEvent(id="evt-1", payload=payload))

        assert result.body["text"] == str(payload)

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_logged(
        self, config: DispatchConfig, mock_channel: MagicMock
    ) -> None:
        """Test that a failed delivery is recorded, not raised."""
        mock_channel.send.return_value = False
        activity = ActivityLog("dispatcher")
        dispatcher = NotificationDispatcher(config, channel=mock_channel, activity=activity)

        result = await dispatcher.dispatch(IncomingEvent(id="evt-1", payload={"message": "x"}))

        assert result.success is False
        assert result.error is not None
        assert [e.event_id for e in activity.errors] == ["evt-1"]

    @pytest.mark.asyncio
    async def test_dispatch_channel_exception(
        self, config: DispatchConfig, mock_channel: MagicMock
    ) -> None:
        mock_channel.send.side_effect = RuntimeError("boom")
        dispatcher = NotificationDispatcher(config, channel=mock_channel)

        result = await dispatcher.dispatch(IncomingEvent(id="evt-1", payload={"message": "x"}))

        assert result.success is False
        assert result.error == "boom"

    @pytest.mark.asyncio
    async def test_dry_run_does_not_send(
        self, config: DispatchConfig, mock_channel: MagicMock
    ) -> None:
        dispatcher = NotificationDispatcher(config, channel=mock_channel, dry_run=True)

        result = await dispatcher.dispatch(IncomingEvent(id="evt-1", payload={"message": "x"}))

        assert result.success is True
        assert result.dry_run is True
        mock_channel.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_receive_continues_after_failure(
        self, config: DispatchConfig, mock_channel: MagicMock
    ) -> None:
        """Test one post per event, with a failure in the middle."""
        mock_channel.send.side_effect = [True, False, True]
        dispatcher = NotificationDispatcher(config, channel=mock_channel)
        events = [
            IncomingEvent(id=f"evt-{i}", payload={"message": f"message {i}"}) for i in range(3)
        ]

        results = await dispatcher.receive(events)

        assert [r.success for r in results] == [True, False, True]
        assert [r.event_id for r in results] == ["evt-0", "evt-1", "evt-2"]
        assert mock_channel.send.await_count == 3
        sent = [call.args[0]["text"] for call in mock_channel.send.await_args_list]
        assert sent == ["message 0", "message 1", "message 2"]

    @pytest.mark.asyncio
    async def test_logs_before_sending(
        self,
        config: DispatchConfig,
        mock_channel: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        dispatcher = NotificationDispatcher(config, channel=mock_channel)

        with caplog.at_level("INFO", logger="deal_relay.notifier.dispatcher"):
            await dispatcher.dispatch(IncomingEvent(id="evt-7", payload={"message": "x"}))

        assert "Sending notification for event evt-7" in caplog.text
        assert '"text": "x"' in caplog.text
