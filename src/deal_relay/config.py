"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
deal relay, loading and validating environment variables at startup so that
no component ever runs in a misconfigured state.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deal_relay.filter.deal_filter import NotificationPolicy
from deal_relay.filter.stages import DEFAULT_PIPEDRIVE_BASE_URL


class DispatchConfig(BaseSettings):
    """Chat webhook dispatch settings."""

    model_config = SettingsConfigDict(
        env_prefix="SLACK_",
        populate_by_name=True,
        frozen=True,
    )

    endpoint_url: str = Field(
        alias="SLACK_WEBHOOK_URL",
        description="Incoming webhook URL notifications are posted to",
    )
    channel: str = Field(
        alias="SLACK_CHANNEL",
        description="Target channel, e.g. #sales",
    )
    identity_name: str = Field(
        alias="SLACK_USERNAME",
        description="Display name for the post",
    )
    icon_url: str = Field(
        default="",
        alias="SLACK_ICON_URL",
        description="Optional avatar URL",
    )
    icon_emoji: str = Field(
        default="",
        alias="SLACK_ICON_EMOJI",
        description="Optional avatar emoji, e.g. :moneybag:",
    )
    timeout_seconds: float = Field(
        default=10.0,
        alias="SLACK_TIMEOUT_SECONDS",
        description="HTTP request timeout in seconds",
        gt=0,
    )
    max_attempts: int = Field(
        default=1,
        alias="SLACK_MAX_ATTEMPTS",
        description="Delivery attempts per notification (1 = no retry)",
        ge=1,
        le=10,
    )
    expected_receive_period_in_days: int = Field(
        default=2,
        alias="SLACK_EXPECTED_RECEIVE_PERIOD_IN_DAYS",
        description="Maximum days expected between received events",
        ge=1,
    )

    @field_validator("endpoint_url")
    @classmethod
    def validate_endpoint_url(cls, v: str) -> str:
        """Validate webhook URL format."""
        v = v.strip()
        if not v:
            raise ValueError("You need to specify a url")
        if not v.startswith(("http://", "https://")):
            raise ValueError("Webhook URL must be an HTTP(S) endpoint")
        return v

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v: str) -> str:
        """Reject a blank channel."""
        if not v.strip():
            raise ValueError("You need to specify a channel")
        return v.strip()

    @field_validator("identity_name")
    @classmethod
    def validate_identity_name(cls, v: str) -> str:
        """Reject a blank username."""
        if not v.strip():
            raise ValueError("You need to specify a username")
        return v.strip()


class FilterSettings(BaseSettings):
    """Deal filter and Pipedrive settings."""

    model_config = SettingsConfigDict(env_prefix="PIPEDRIVE_", populate_by_name=True)

    api_token: SecretStr | None = Field(
        default=None,
        alias="PIPEDRIVE_API_TOKEN",
        description="Pipedrive API token used for stage lookups",
    )
    base_url: str = Field(
        default=DEFAULT_PIPEDRIVE_BASE_URL,
        alias="PIPEDRIVE_BASE_URL",
        description="Pipedrive API base URL",
    )
    notification_policy: NotificationPolicy = Field(
        default=NotificationPolicy.ALL_CHANGES,
        alias="PIPEDRIVE_NOTIFICATION_POLICY",
        description="all_changes or first_match",
    )
    deal_link_template: str | None = Field(
        default=None,
        alias="PIPEDRIVE_DEAL_LINK_TEMPLATE",
        description="Link appended to messages, with a {deal_id} placeholder",
    )
    stage_names: dict[str, str] = Field(
        default_factory=dict,
        alias="PIPEDRIVE_STAGE_NAMES",
        description="Static stage id to name mapping (JSON), used without a token",
    )
    expected_update_period_in_days: int = Field(
        default=1,
        alias="PIPEDRIVE_EXPECTED_UPDATE_PERIOD_IN_DAYS",
        description="Maximum days expected between emitted notifications",
        ge=1,
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate API URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Pipedrive base URL must be an HTTP(S) endpoint")
        return v

    @field_validator("deal_link_template")
    @classmethod
    def validate_deal_link_template(cls, v: str | None) -> str | None:
        """Require the deal id placeholder and no other format fields."""
        if v is None:
            return v
        if "{deal_id}" not in v:
            raise ValueError("Deal link template must contain {deal_id}")
        try:
            v.format(deal_id="1")
        except (LookupError, ValueError) as e:
            raise ValueError(f"Deal link template can only use {{deal_id}}: {e}") from e
        return v

    @property
    def uses_api(self) -> bool:
        """Check if stage names are looked up through the Pipedrive API."""
        return self.api_token is not None


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from deal_relay.config import get_settings

        settings = get_settings()
        print(settings.dispatch.channel)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nested configuration groups
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    filter: FilterSettings = Field(default_factory=FilterSettings)

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Run without posting to the webhook",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "webhook_url": self._redact_webhook(self.dispatch.endpoint_url),
            "channel": self.dispatch.channel,
            "username": self.dispatch.identity_name,
            "max_attempts": str(self.dispatch.max_attempts),
            "pipedrive_api_token": "(set)" if self.filter.api_token else "(not set)",
            "notification_policy": self.filter.notification_policy.value,
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    @staticmethod
    def _redact_webhook(url: str) -> str:
        """Redact the secret path of a webhook URL."""
        if "://" not in url:
            return url
        protocol_end = url.index("://") + 3
        slash = url.find("/", protocol_end)
        if slash == -1:
            return url
        return f"{url[:slash]}/***"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
