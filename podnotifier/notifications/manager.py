"""Notification channels and the pod termination callbacks.

NotificationChannel -- ABC every channel must implement.
NotificationMessage -- Titled, colored message with key/value fields.
PodEventNotifier    -- Builds messages for pod terminations and fans them
                       out to every registered channel. Its ``on_succeeded``
                       and ``on_failed`` methods are the watcher callbacks.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

import structlog

from podnotifier.models.events import PodTerminationEvent
from podnotifier.observability.metrics import notifications_total

_log = structlog.get_logger(component="notifications.manager")

COLOR_GOOD = "good"
COLOR_DANGER = "danger"


@dataclass(frozen=True)
class MessageField:
    """One key/value attachment field."""

    title: str
    value: str
    short: bool = True


@dataclass(frozen=True)
class NotificationMessage:
    """A channel-agnostic notification.

    ``event`` is the termination the message describes; channels that post
    structured payloads read it directly.
    """

    title: str
    text: str
    color: str
    fields: tuple[MessageField, ...] = ()
    event: PodTerminationEvent | None = None


class NotificationChannel(ABC):
    """Abstract base class for all notification channels.

    Every concrete channel must implement ``send``, which should not raise;
    it returns ``False`` instead.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Human-readable channel identifier used in metrics and logs."""

    @abstractmethod
    async def send(self, message: NotificationMessage) -> bool:
        """Deliver *message* via this channel.

        Returns:
            True  -- message accepted by the remote endpoint.
            False -- delivery failed (already logged inside implementation).
        """

    async def start(self) -> None:  # noqa: B027
        """Prepare the channel (resolve IDs, open clients). Optional."""

    async def stop(self) -> None:  # noqa: B027
        """Release resources held by the channel. Optional."""


def build_succeeded_message(event: PodTerminationEvent) -> NotificationMessage:
    return NotificationMessage(
        title="Pod Succeeded",
        text=_headline(event),
        color=COLOR_GOOD,
        fields=_timing_fields(event),
        event=event,
    )


def build_failed_message(event: PodTerminationEvent) -> NotificationMessage:
    """Failure message; exit code, reason and message are added when known."""
    fields = list(_timing_fields(event))
    if event.exit_code >= 0:
        fields.append(MessageField("ExitCode", str(event.exit_code)))
    if event.reason:
        fields.append(MessageField("Reason", event.reason))
    if event.message:
        fields.append(MessageField("Message", event.message, short=False))
    return NotificationMessage(
        title="Pod Failed",
        text=_headline(event),
        color=COLOR_DANGER,
        fields=tuple(fields),
        event=event,
    )


def _headline(event: PodTerminationEvent) -> str:
    return f"[{event.namespace}] {event.pod_name}"


def _timing_fields(event: PodTerminationEvent) -> tuple[MessageField, ...]:
    return (
        MessageField("StartedAt", str(event.started_at)),
        MessageField("FinishedAt", str(event.finished_at)),
    )


class PodEventNotifier:
    """Sends one message per pod termination to every channel.

    Channels are called concurrently; the callback returns only after all
    of them finished, so the watcher keeps strict per-pod ordering.
    """

    def __init__(self, channels: list[NotificationChannel]) -> None:
        self._channels = channels

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    async def start(self) -> None:
        for channel in self._channels:
            await channel.start()

    async def stop(self) -> None:
        for channel in self._channels:
            try:
                await channel.stop()
            except Exception as exc:
                _log.warning("notification_channel_stop_failed", channel=channel.channel_name, error=str(exc))

    async def on_succeeded(self, event: PodTerminationEvent) -> bool:
        delivered = await self._deliver(build_succeeded_message(event))
        self._log_event("pod_succeeded", event, delivered)
        return delivered

    async def on_failed(self, event: PodTerminationEvent) -> bool:
        delivered = await self._deliver(build_failed_message(event))
        self._log_event("pod_failed", event, delivered)
        return delivered

    async def _deliver(self, message: NotificationMessage) -> bool:
        if not self._channels:
            return True
        results = await asyncio.gather(*(self._send_one(c, message) for c in self._channels))
        return all(results)

    async def _send_one(self, channel: NotificationChannel, message: NotificationMessage) -> bool:
        """Deliver to a single channel, recording metrics regardless of outcome."""
        try:
            success = await channel.send(message)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "notification_channel_unexpected_error",
                channel=channel.channel_name,
                title=message.title,
                error=str(exc),
            )
            success = False

        label = "true" if success else "false"
        notifications_total.labels(channel=channel.channel_name, success=label).inc()

        if not success:
            _log.warning("notification_failed", channel=channel.channel_name, title=message.title)
        return success

    @staticmethod
    def _log_event(name: str, event: PodTerminationEvent, delivered: bool) -> None:
        _log.info(
            name,
            namespace=event.namespace,
            pod=event.pod_name,
            exit_code=event.exit_code,
            reason=event.reason,
            delivered=delivered,
        )
