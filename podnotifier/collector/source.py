"""Watch source contract and its kubernetes-asyncio implementation.

WatchSource      -- opens a filtered pod subscription.
Subscription     -- yields RawPodNotification until closed; None marks the
                    end of the stream.
KubernetesPodSource -- WatchSource backed by CoreV1Api list/watch calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from kubernetes_asyncio import watch

from podnotifier.errors import WatchSubscriptionError
from podnotifier.models.events import (
    ContainerStatus,
    ContainerTermination,
    PodSnapshot,
    RawPodNotification,
    WatchEventType,
)
from podnotifier.observability.logging import get_logger

_logger = get_logger("collector.source")

_FORWARDED_TYPES = {WatchEventType.ADDED, WatchEventType.MODIFIED, WatchEventType.DELETED}


class Subscription(ABC):
    """A live, filtered feed of pod notifications owned by a single reader."""

    @abstractmethod
    async def next(self) -> RawPodNotification | None:
        """Wait for the next notification. None means the stream has ended."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying stream. Safe to call more than once."""


class WatchSource(ABC):
    """Factory for pod subscriptions."""

    @abstractmethod
    async def subscribe(self, namespace: str, label_selector: str) -> Subscription:
        """Open a subscription for pods in *namespace* matching *label_selector*.

        An empty namespace selects all namespaces.

        Raises:
            WatchSubscriptionError: if the stream cannot be opened.
        """


class KubernetesPodSource(WatchSource):
    """Pod watch source on top of a kubernetes-asyncio ``CoreV1Api``.

    Args:
        api: CoreV1Api bound to the target cluster.
    """

    def __init__(self, api: Any) -> None:
        self._api = api

    async def subscribe(self, namespace: str, label_selector: str) -> KubernetesPodSubscription:
        # A cheap list call proves credentials and RBAC before any task
        # starts, and pins the resource version so no past terminations
        # are replayed.
        try:
            if namespace:
                pods = await self._api.list_namespaced_pod(namespace, label_selector=label_selector, limit=1)
            else:
                pods = await self._api.list_pod_for_all_namespaces(label_selector=label_selector, limit=1)
        except Exception as exc:
            _logger.error(
                "pod_watch_subscribe_failed",
                namespace=namespace,
                labels=label_selector,
                error=str(exc),
            )
            raise WatchSubscriptionError(namespace, label_selector, exc) from exc

        resource_version = _resource_version(pods)
        _logger.info(
            "pod_watch_subscribed",
            namespace=namespace or "*",
            labels=label_selector,
            resource_version=resource_version,
        )
        return KubernetesPodSubscription(
            self._api,
            namespace=namespace,
            label_selector=label_selector,
            resource_version=resource_version,
        )


class KubernetesPodSubscription(Subscription):
    """Reads pod watch events and converts them to RawPodNotification.

    A single ``Watch`` serves the whole subscription. The library re-issues
    the request from the last seen resource version whenever the API server
    ends it, and turns ERROR events into ``ApiException``, which propagates
    to the caller. The stream ends only once the subscription is closed.
    """

    def __init__(
        self,
        api: Any,
        namespace: str,
        label_selector: str,
        resource_version: str,
    ) -> None:
        self._api = api
        self._namespace = namespace
        self._label_selector = label_selector
        self._resource_version = resource_version
        self._watch: Any = None
        self._closed = False

    @property
    def resource_version(self) -> str:
        return self._resource_version

    @property
    def closed(self) -> bool:
        return self._closed

    async def next(self) -> RawPodNotification | None:
        while not self._closed:
            if self._watch is None:
                self._open_stream()

            try:
                event = await self._watch.__anext__()
            except StopAsyncIteration:
                await self._release_watch()
                return None

            notification = self._convert(event)
            if notification is not None:
                return notification
        return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._release_watch()

    def _open_stream(self) -> None:
        w = watch.Watch()
        kwargs: dict[str, Any] = {
            "label_selector": self._label_selector,
            "allow_watch_bookmarks": True,
        }
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version
        if self._namespace:
            w.stream(self._api.list_namespaced_pod, self._namespace, **kwargs)
        else:
            w.stream(self._api.list_pod_for_all_namespaces, **kwargs)
        self._watch = w

    async def _release_watch(self) -> None:
        w = self._watch
        self._watch = None
        if w is None:
            return
        w.stop()
        await w.close()

    def _convert(self, event: dict[str, Any]) -> RawPodNotification | None:
        raw_type = str(event.get("type", ""))
        obj = event.get("object")

        try:
            event_type = WatchEventType(raw_type)
        except ValueError:
            _logger.warning("pod_watch_unknown_event_type", type=raw_type)
            return None

        rv = _resource_version(obj)
        if rv:
            self._resource_version = rv

        if event_type not in _FORWARDED_TYPES:
            return None

        snapshot = pod_snapshot_from_object(obj)
        if snapshot is None:
            _logger.warning("pod_watch_non_pod_object", type=raw_type)
            return None

        return RawPodNotification(type=event_type, pod=snapshot, observed_at=datetime.now(tz=UTC))


# ---------------------------------------------------------------------------
# Object conversion
# ---------------------------------------------------------------------------


def pod_snapshot_from_object(obj: Any) -> PodSnapshot | None:
    """Build a PodSnapshot from a ``V1Pod`` model or a raw pod dict.

    Returns None when *obj* has no metadata, i.e. it is not a pod.
    """
    if obj is None:
        return None
    if isinstance(obj, dict):
        return _snapshot_from_dict(obj)
    return _snapshot_from_model(obj)


def _snapshot_from_model(pod: Any) -> PodSnapshot | None:
    metadata = getattr(pod, "metadata", None)
    if metadata is None:
        return None
    status = getattr(pod, "status", None)

    statuses: list[ContainerStatus] = []
    for cs in getattr(status, "container_statuses", None) or []:
        terminated = None
        term = getattr(cs.state, "terminated", None) if cs.state is not None else None
        if term is not None:
            terminated = ContainerTermination(
                exit_code=int(term.exit_code or 0),
                reason=term.reason or "",
                message=term.message or "",
                finished_at=_coerce_dt(term.finished_at),
            )
        statuses.append(ContainerStatus(name=cs.name or "", terminated=terminated))

    return PodSnapshot(
        namespace=metadata.namespace or "",
        name=metadata.name or "",
        uid=metadata.uid or "",
        phase=getattr(status, "phase", None) or "",
        creation_timestamp=_coerce_dt(metadata.creation_timestamp),
        deletion_timestamp=_coerce_dt(metadata.deletion_timestamp),
        container_statuses=tuple(statuses),
    )


def _snapshot_from_dict(raw: dict[str, Any]) -> PodSnapshot | None:
    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        return None
    status = raw.get("status") or {}

    statuses: list[ContainerStatus] = []
    for cs in status.get("containerStatuses") or []:
        term = (cs.get("state") or {}).get("terminated")
        terminated = None
        if term:
            terminated = ContainerTermination(
                exit_code=int(term.get("exitCode") or 0),
                reason=str(term.get("reason") or ""),
                message=str(term.get("message") or ""),
                finished_at=_coerce_dt(term.get("finishedAt")),
            )
        statuses.append(ContainerStatus(name=str(cs.get("name", "")), terminated=terminated))

    return PodSnapshot(
        namespace=str(metadata.get("namespace", "")),
        name=str(metadata.get("name", "")),
        uid=str(metadata.get("uid", "")),
        phase=str(status.get("phase") or ""),
        creation_timestamp=_coerce_dt(metadata.get("creationTimestamp")),
        deletion_timestamp=_coerce_dt(metadata.get("deletionTimestamp")),
        container_statuses=tuple(statuses),
    )


def _coerce_dt(value: Any) -> datetime | None:
    """Return a timezone-aware datetime, parsing RFC 3339 strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _resource_version(obj: Any) -> str:
    if obj is None:
        return ""
    if isinstance(obj, dict):
        return str((obj.get("metadata") or {}).get("resourceVersion") or "")
    metadata = getattr(obj, "metadata", None)
    return str(getattr(metadata, "resource_version", "") or "")
