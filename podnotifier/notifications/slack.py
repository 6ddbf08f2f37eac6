"""Slack notification channel using the Slack Web API over httpx.

Messages are posted with ``chat.postMessage`` as a single legacy attachment
(colored side bar, title, text and short fields). The bot token needs the
``chat:write`` scope, plus ``channels:read``/``groups:read`` when the
channel is given by name instead of ID.
"""

from __future__ import annotations

import re
from typing import Any

import httpx
import structlog

from podnotifier.errors import SlackError
from podnotifier.notifications.manager import NotificationChannel, NotificationMessage

_log = structlog.get_logger(component="notifications.slack")

SLACK_API_URL = "https://slack.com/api/"

_CHANNEL_ID_RE = re.compile(r"^[CG][A-Z0-9]{8,}$")
_PAGE_LIMIT = 200


class SlackNotificationChannel(NotificationChannel):
    """Posts messages to one Slack channel.

    Args:
        api_token: Bot or user OAuth token.
        channel:   Channel name (``builds`` or ``#builds``) or channel ID.
        timeout:   HTTP request timeout in seconds. Defaults to 10.
        base_url:  Web API root; overridable for tests and proxies.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        api_token: str,
        channel: str,
        timeout: float = 10.0,
        base_url: str = SLACK_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_token:
            raise ValueError("Slack api_token must not be empty")
        if not channel:
            raise ValueError("Slack channel must not be empty")
        self._api_token = api_token
        self._channel = channel
        self._timeout = timeout
        self._base_url = base_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._channel_id: str | None = None

    @property
    def channel_name(self) -> str:
        return "slack"

    @property
    def channel_id(self) -> str | None:
        return self._channel_id

    async def start(self) -> None:
        await self.resolve_channel()

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def resolve_channel(self) -> str:
        """Return the channel ID, looking the name up on first use.

        Raises:
            SlackError: the API call failed or no channel has that name.
        """
        if self._channel_id is not None:
            return self._channel_id

        name = self._channel.lstrip("#")
        if _CHANNEL_ID_RE.match(name):
            self._channel_id = name
            return name

        cursor = ""
        while True:
            params: dict[str, Any] = {
                "types": "public_channel,private_channel",
                "exclude_archived": "true",
                "limit": _PAGE_LIMIT,
            }
            if cursor:
                params["cursor"] = cursor
            data = await self._api_call("GET", "conversations.list", params=params)
            for entry in data.get("channels", []):
                if entry.get("name") == name:
                    self._channel_id = str(entry["id"])
                    _log.info("slack_channel_resolved", channel=name, channel_id=self._channel_id)
                    return self._channel_id
            cursor = (data.get("response_metadata") or {}).get("next_cursor", "")
            if not cursor:
                break

        raise SlackError(f"failed to retrieve Slack channel info: channel {self._channel!r} not found")

    async def send(self, message: NotificationMessage) -> bool:
        """Post *message* to the channel. Returns False on any API failure."""
        try:
            channel_id = await self.resolve_channel()
            await self._api_call("POST", "chat.postMessage", json=self._build_payload(channel_id, message))
        except SlackError as exc:
            _log.warning("slack_post_failed", error=str(exc), title=message.title)
            return False
        return True

    def _build_payload(self, channel_id: str, message: NotificationMessage) -> dict[str, Any]:
        return {
            "channel": channel_id,
            "text": "",
            "attachments": [
                {
                    "color": message.color,
                    "title": message.title,
                    "text": message.text,
                    "fallback": f"{message.title}: {message.text}",
                    "fields": [{"title": f.title, "value": f.value, "short": f.short} for f in message.fields],
                }
            ],
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._api_token}"},
                transport=self._transport,
            )
        return self._client

    async def _api_call(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        """Call a Web API method and return the decoded body.

        Raises:
            SlackError: transport error, non-2xx status, or ``"ok": false``.
        """
        try:
            response = await self._get_client().request(method, endpoint, **kwargs)
        except httpx.TimeoutException as exc:
            raise SlackError(f"Slack {endpoint} timed out") from exc
        except httpx.HTTPError as exc:
            raise SlackError(f"Slack {endpoint} request failed: {exc}") from exc

        if not response.is_success:
            raise SlackError(f"Slack {endpoint} returned HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as exc:
            raise SlackError(f"Slack {endpoint} returned a non-JSON body") from exc

        if not data.get("ok", False):
            raise SlackError(f"Slack {endpoint} failed: {data.get('error', 'unknown_error')}")
        return data
