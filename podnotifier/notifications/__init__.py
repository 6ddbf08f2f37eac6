"""Notification sink for k8s-pod-notifier.

Exports:
    NotificationChannel        -- Abstract base for all channel implementations.
    NotificationMessage        -- Titled, colored message with fields.
    PodEventNotifier           -- Builds termination messages and exposes the
                                  ``on_succeeded`` / ``on_failed`` callbacks.
    SlackNotificationChannel   -- Slack Web API channel (chat.postMessage).
    WebhookNotificationChannel -- Generic JSON POST webhook channel.
    build_notifier             -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from podnotifier.notifications.manager import (
    MessageField,
    NotificationChannel,
    NotificationMessage,
    PodEventNotifier,
    build_failed_message,
    build_succeeded_message,
)
from podnotifier.notifications.slack import SlackNotificationChannel
from podnotifier.notifications.webhook import WebhookNotificationChannel

if TYPE_CHECKING:
    from podnotifier.models.config import SlackConfig, WebhookConfig

_log = structlog.get_logger(component="notifications")

__all__ = [
    "MessageField",
    "NotificationChannel",
    "NotificationMessage",
    "PodEventNotifier",
    "SlackNotificationChannel",
    "WebhookNotificationChannel",
    "build_failed_message",
    "build_notifier",
    "build_succeeded_message",
]


def build_notifier(slack: SlackConfig, webhook: WebhookConfig | None = None) -> PodEventNotifier:
    """Build a PodEventNotifier from resolved configuration.

    Slack is mandatory; the webhook channel is added only when a URL is
    configured. Channels are not started here: call ``start()`` so the
    Slack channel name is resolved before the watch opens.

    Raises:
        ValueError: the Slack token or channel is empty.
    """
    channels: list[NotificationChannel] = [
        SlackNotificationChannel(
            api_token=slack.api_token,
            channel=slack.channel,
            timeout=slack.timeout_seconds,
        )
    ]
    _log.info("slack_channel_enabled", channel=slack.channel)

    if webhook is not None and webhook.url:
        try:
            channels.append(WebhookNotificationChannel(url=webhook.url))
            _log.info("webhook_channel_enabled")
        except ValueError as exc:
            _log.warning("webhook_channel_disabled", reason=str(exc))

    return PodEventNotifier(channels=channels)
