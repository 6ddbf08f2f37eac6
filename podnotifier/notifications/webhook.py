"""Generic JSON webhook notification channel.

Posts each pod termination as a flat JSON object so that any HTTP endpoint
can consume it without Slack-specific parsing.
"""

from __future__ import annotations

import httpx
import structlog

from podnotifier.notifications.manager import NotificationChannel, NotificationMessage

_log = structlog.get_logger(component="notifications.webhook")


class WebhookNotificationChannel(NotificationChannel):
    """Delivers terminations by POSTing a JSON payload to a configurable URL.

    Args:
        url:       Full endpoint URL (must be HTTPS in production).
        headers:   Optional extra headers (e.g. Authorization).
        timeout:   HTTP request timeout in seconds. Defaults to 10.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    @property
    def channel_name(self) -> str:
        return "webhook"

    async def send(self, message: NotificationMessage) -> bool:
        """POST *message* as JSON. Returns True on a 2xx response."""
        payload = self._build_payload(message)
        request_headers = {
            "Content-Type": "application/json",
            **self._headers,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._url, json=payload, headers=request_headers)
                if response.is_success:
                    return True
                _log.warning(
                    "webhook_non_2xx_response",
                    status_code=response.status_code,
                    body=response.text[:200],
                    title=message.title,
                )
                return False
        except httpx.TimeoutException:
            _log.warning("webhook_request_timeout", url=self._url, title=message.title)
            return False
        except httpx.HTTPError as exc:
            _log.warning("webhook_http_error", error=str(exc), title=message.title)
            return False

    def _build_payload(self, message: NotificationMessage) -> dict[str, object]:
        payload: dict[str, object] = {
            "title": message.title,
            "text": message.text,
            "color": message.color,
            "fields": {f.title: f.value for f in message.fields},
        }
        event = message.event
        if event is not None:
            payload.update(
                {
                    "outcome": event.outcome.value,
                    "namespace": event.namespace,
                    "pod_name": event.pod_name,
                    "container_name": event.container_name,
                    "started_at": event.started_at.isoformat(),
                    "finished_at": event.finished_at.isoformat(),
                    "exit_code": event.exit_code,
                    "reason": event.reason,
                    "message": event.message,
                }
            )
        return payload
