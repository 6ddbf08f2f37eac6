"""Shared fixtures for k8s-pod-notifier integration tests.

Wires the real KubernetesPodSource, PodTerminationWatcher and notification
channels together. The real kubernetes_asyncio Watch reads scripted event
lines from FakeCoreV1Api, and Slack/webhook HTTP is served by
httpx.MockTransport, so full pipelines run without a cluster or network.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from podnotifier.collector.source import KubernetesPodSource
from podnotifier.notifications import PodEventNotifier, SlackNotificationChannel

from ..conftest import FakeCoreV1Api, watch_line

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

_NOW = datetime(2026, 2, 18, 12, 0, 0, tzinfo=UTC)
_5_MIN_AGO = _NOW - timedelta(minutes=5)

SLACK_CHANNEL_ID = "C0123456789"


def _rfc3339(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Pod event factory helpers
# ---------------------------------------------------------------------------


def make_pod(
    name: str = "job-1",
    namespace: str = "default",
    phase: str = "Succeeded",
    exit_code: int | None = 0,
    reason: str = "Completed",
    message: str = "",
    uid: str = "",
    resource_version: str = "200",
    deleted: bool = False,
) -> dict[str, Any]:
    """Create a raw pod object as the API server would send it."""
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "uid": uid or f"uid-{namespace}-{name}",
        "resourceVersion": resource_version,
        "creationTimestamp": _rfc3339(_5_MIN_AGO),
        "labels": {"app": "batch"},
    }
    if deleted:
        metadata["deletionTimestamp"] = _rfc3339(_NOW)

    state: dict[str, Any] = {"running": {"startedAt": _rfc3339(_5_MIN_AGO)}}
    if exit_code is not None:
        state = {
            "terminated": {
                "exitCode": exit_code,
                "reason": reason,
                "message": message,
                "finishedAt": _rfc3339(_NOW),
            }
        }
    return {
        "metadata": metadata,
        "status": {"phase": phase, "containerStatuses": [{"name": "main", "state": state}]},
    }


def make_succeeded(name: str = "job-1", **kwargs: Any) -> dict[str, Any]:
    return make_watch_event("MODIFIED", make_pod(name=name, phase="Succeeded", exit_code=0, **kwargs))


def make_failed(
    name: str = "job-1", exit_code: int = 137, reason: str = "OOMKilled", **kwargs: Any
) -> dict[str, Any]:
    return make_watch_event(
        "MODIFIED", make_pod(name=name, phase="Failed", exit_code=exit_code, reason=reason, **kwargs)
    )


def make_watch_event(type_: str, obj: dict[str, Any]) -> dict[str, Any]:
    return {"type": type_, "object": obj}


# ---------------------------------------------------------------------------
# Kubernetes fakes
# ---------------------------------------------------------------------------


def make_source(*batches: list[dict[str, Any]]) -> tuple[KubernetesPodSource, FakeCoreV1Api]:
    """Source over the real Watch; each batch is served as one watch request."""
    api = FakeCoreV1Api(*[[watch_line(e["type"], e["object"]) for e in batch] for batch in batches])
    return KubernetesPodSource(api), api


# ---------------------------------------------------------------------------
# Slack fake
# ---------------------------------------------------------------------------


class SlackRecorder:
    """MockTransport handler that accepts every post and records it."""

    def __init__(self) -> None:
        self.posts: list[dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/conversations.list"):
            return httpx.Response(
                200,
                json={"ok": True, "channels": [{"id": SLACK_CHANNEL_ID, "name": "builds"}]},
            )
        if request.url.path.endswith("/chat.postMessage"):
            self.posts.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404, json={"ok": False, "error": "unknown_method"})

    @property
    def titles(self) -> list[str]:
        return [p["attachments"][0]["title"] for p in self.posts]


@pytest.fixture
def slack() -> SlackRecorder:
    return SlackRecorder()


@pytest.fixture
async def notifier(slack: SlackRecorder) -> Any:
    channel = SlackNotificationChannel(
        api_token="xoxb-test",
        channel="#builds",
        transport=httpx.MockTransport(slack),
    )
    pod_notifier = PodEventNotifier([channel])
    await pod_notifier.start()
    yield pod_notifier
    await pod_notifier.stop()
