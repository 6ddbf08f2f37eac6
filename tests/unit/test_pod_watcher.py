"""Tests for the dispatch loop (PodTerminationWatcher / watch()).

Uses an in-memory queue-backed subscription so each scenario controls
exactly which notifications arrive and when the stream ends.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from podnotifier.collector.dedup import ReportedPods
from podnotifier.collector.pod_watcher import PodTerminationWatcher, watch
from podnotifier.collector.source import Subscription, WatchSource
from podnotifier.errors import WatchSubscriptionError
from podnotifier.models.config import FilterConfig
from podnotifier.models.events import (
    ContainerStatus,
    ContainerTermination,
    PodPhase,
    PodSnapshot,
    PodTerminationEvent,
    RawPodNotification,
    WatchEventType,
)

_TS = datetime(2026, 2, 18, 12, 0, 0, tzinfo=UTC)
_TIMEOUT = 2.0


# ---------------------------------------------------------------------------
# In-memory source
# ---------------------------------------------------------------------------


class _QueueSubscription(Subscription):
    """Hands out queued items; an Exception item is raised from next()."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[RawPodNotification | Exception | None] = asyncio.Queue()
        self.closed = False
        self.close_calls = 0

    def push(self, *items: RawPodNotification | Exception | None) -> None:
        for item in items:
            self.queue.put_nowait(item)

    async def next(self) -> RawPodNotification | None:
        item = await self.queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class _FakeSource(WatchSource):
    def __init__(self, subscription: _QueueSubscription | None = None, error: Exception | None = None) -> None:
        self.subscription = subscription or _QueueSubscription()
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def subscribe(self, namespace: str, label_selector: str) -> Subscription:
        self.calls.append((namespace, label_selector))
        if self.error is not None:
            raise WatchSubscriptionError(namespace, label_selector, self.error)
        return self.subscription


# ---------------------------------------------------------------------------
# Notification factories
# ---------------------------------------------------------------------------


def _pod(
    phase: str,
    name: str = "job-1",
    namespace: str = "default",
    uid: str = "uid-1",
    exit_code: int = 0,
    reason: str = "",
    deleted: bool = False,
) -> PodSnapshot:
    return PodSnapshot(
        namespace=namespace,
        name=name,
        phase=phase,
        uid=uid,
        creation_timestamp=_TS,
        deletion_timestamp=_TS if deleted else None,
        container_statuses=(
            ContainerStatus(
                name="main",
                terminated=ContainerTermination(exit_code=exit_code, reason=reason, finished_at=_TS),
            ),
        ),
    )


def _succeeded(name: str = "job-1", uid: str = "uid-1") -> RawPodNotification:
    return RawPodNotification(
        type=WatchEventType.MODIFIED,
        pod=_pod(PodPhase.SUCCEEDED, name=name, uid=uid),
        observed_at=_TS,
    )


def _failed(
    name: str = "job-1", exit_code: int = 137, reason: str = "OOMKilled", uid: str = "uid-1"
) -> RawPodNotification:
    return RawPodNotification(
        type=WatchEventType.MODIFIED,
        pod=_pod(PodPhase.FAILED, name=name, uid=uid, exit_code=exit_code, reason=reason),
        observed_at=_TS,
    )


def _deleted(name: str = "job-1", uid: str = "uid-1") -> RawPodNotification:
    return RawPodNotification(
        type=WatchEventType.DELETED,
        pod=_pod(PodPhase.SUCCEEDED, name=name, uid=uid, deleted=True),
        observed_at=_TS,
    )


async def _start(
    source: _FakeSource,
    config: FilterConfig | None = None,
    on_succeeded: object | None = None,
    on_failed: object | None = None,
    stop_event: asyncio.Event | None = None,
    reported: ReportedPods | None = None,
) -> PodTerminationWatcher:
    return await watch(
        source,
        "default",
        "app=batch",
        config or FilterConfig(),
        on_succeeded or AsyncMock(return_value=True),  # type: ignore[arg-type]
        on_failed or AsyncMock(return_value=True),  # type: ignore[arg-type]
        stop_event=stop_event,
        reported=reported,
    )


async def _drain(watcher: PodTerminationWatcher) -> None:
    await asyncio.wait_for(watcher.wait(), timeout=_TIMEOUT)


# ---------------------------------------------------------------------------
# Callback dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    async def test_success_invokes_on_succeeded_once(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        on_failed = AsyncMock(return_value=True)
        source.subscription.push(_succeeded(), None)

        watcher = await _start(source, on_succeeded=on_succeeded, on_failed=on_failed)
        await _drain(watcher)

        on_succeeded.assert_awaited_once()
        on_failed.assert_not_awaited()
        event: PodTerminationEvent = on_succeeded.await_args.args[0]
        assert (event.namespace, event.pod_name, event.exit_code, event.reason) == ("default", "job-1", 0, "")

    async def test_failure_invokes_on_failed_with_exit_details(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        on_failed = AsyncMock(return_value=True)
        source.subscription.push(_failed(), None)

        watcher = await _start(source, on_succeeded=on_succeeded, on_failed=on_failed)
        await _drain(watcher)

        on_succeeded.assert_not_awaited()
        on_failed.assert_awaited_once()
        event: PodTerminationEvent = on_failed.await_args.args[0]
        assert event.exit_code == 137
        assert event.reason == "OOMKilled"

    async def test_deleted_pod_in_succeeded_phase_is_ignored(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        deleting = RawPodNotification(
            type=WatchEventType.MODIFIED,
            pod=_pod(PodPhase.SUCCEEDED, deleted=True),
            observed_at=_TS,
        )
        source.subscription.push(deleting, None)

        watcher = await _start(source, on_succeeded=on_succeeded)
        await _drain(watcher)

        on_succeeded.assert_not_awaited()

    async def test_sync_callbacks_are_supported(self) -> None:
        source = _FakeSource()
        on_succeeded = MagicMock(return_value=None)
        source.subscription.push(_succeeded(), None)

        watcher = await _start(source, on_succeeded=on_succeeded)
        await _drain(watcher)

        on_succeeded.assert_called_once()
        assert watcher.stats.callback_failures == 0

    async def test_subscribe_receives_scope(self) -> None:
        source = _FakeSource()
        source.subscription.push(None)
        watcher = await _start(source)
        await _drain(watcher)
        assert source.calls == [("default", "app=batch")]

    async def test_start_is_idempotent(self) -> None:
        source = _FakeSource()
        source.subscription.push(None)
        watcher = await _start(source)
        await watcher.start()
        await _drain(watcher)
        assert len(source.calls) == 1


# ---------------------------------------------------------------------------
# Filtering and at-most-once
# ---------------------------------------------------------------------------


class TestSuppression:
    async def test_failure_only_config_with_mixed_stream(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        on_failed = AsyncMock(return_value=True)
        source.subscription.push(_succeeded(name="ok-1"), _failed(name="bad-1"), None)

        watcher = await _start(
            source,
            config=FilterConfig(report_success=False, report_failure=True),
            on_succeeded=on_succeeded,
            on_failed=on_failed,
        )
        await _drain(watcher)

        on_succeeded.assert_not_awaited()
        on_failed.assert_awaited_once()
        assert watcher.stats.filtered == 1
        assert watcher.stats.failed == 1

    async def test_redelivered_terminal_snapshot_reported_once(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        source.subscription.push(_succeeded(), _succeeded(), _succeeded(), None)

        watcher = await _start(source, on_succeeded=on_succeeded)
        await _drain(watcher)

        assert on_succeeded.await_count == 1
        assert watcher.stats.duplicates == 2

    async def test_recreated_pod_reported_again(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        source.subscription.push(_succeeded(uid="uid-1"), _succeeded(uid="uid-2"), None)

        watcher = await _start(source, on_succeeded=on_succeeded)
        await _drain(watcher)

        assert on_succeeded.await_count == 2

    async def test_delete_notification_forgets_pod(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        source.subscription.push(_succeeded(), _deleted(), _succeeded(), None)

        watcher = await _start(source, on_succeeded=on_succeeded)
        await _drain(watcher)

        assert on_succeeded.await_count == 2

    async def test_zero_capacity_reports_every_redelivery(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        source.subscription.push(_succeeded(), _succeeded(), None)

        watcher = await _start(source, on_succeeded=on_succeeded, reported=ReportedPods(capacity=0))
        await _drain(watcher)

        assert on_succeeded.await_count == 2


# ---------------------------------------------------------------------------
# Callback failures
# ---------------------------------------------------------------------------


class TestCallbackFailures:
    async def test_raising_callback_does_not_stop_the_loop(self) -> None:
        source = _FakeSource()
        on_failed = AsyncMock(side_effect=RuntimeError("slack down"))
        on_succeeded = AsyncMock(return_value=True)
        source.subscription.push(_failed(name="bad-1"), _succeeded(name="ok-1"), None)

        watcher = await _start(source, on_succeeded=on_succeeded, on_failed=on_failed)
        await _drain(watcher)

        on_failed.assert_awaited_once()
        on_succeeded.assert_awaited_once()
        assert watcher.stats.callback_failures == 1
        assert watcher.error is None

    async def test_false_return_counts_as_failure(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=False)
        source.subscription.push(_succeeded(), None)

        watcher = await _start(source, on_succeeded=on_succeeded)
        await _drain(watcher)

        assert watcher.stats.callback_failures == 1


# ---------------------------------------------------------------------------
# Stream end, errors and cancellation
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_stream_closure_ends_loop_and_closes_subscription(self) -> None:
        source = _FakeSource()
        source.subscription.push(None)

        watcher = await _start(source)
        await _drain(watcher)

        assert not watcher.running
        assert watcher.error is None
        assert not watcher.stop_requested
        assert source.subscription.closed

    async def test_stream_error_is_recorded(self) -> None:
        source = _FakeSource()
        source.subscription.push(ConnectionResetError("reset by peer"))

        watcher = await _start(source)
        await _drain(watcher)

        assert not watcher.running
        assert isinstance(watcher.error, ConnectionResetError)
        assert source.subscription.closed

    async def test_subscription_error_raised_synchronously(self) -> None:
        source = _FakeSource(error=PermissionError("pods is forbidden"))

        with pytest.raises(WatchSubscriptionError) as exc_info:
            await _start(source)

        assert "pods is forbidden" in str(exc_info.value)
        assert exc_info.value.namespace == "default"

    async def test_stop_while_waiting_for_next_notification(self) -> None:
        source = _FakeSource()
        on_succeeded = AsyncMock(return_value=True)
        stop_event = asyncio.Event()

        watcher = await _start(source, on_succeeded=on_succeeded, stop_event=stop_event)
        assert watcher.running
        await asyncio.sleep(0)
        stop_event.set()
        await _drain(watcher)

        source.subscription.push(_succeeded())
        await asyncio.sleep(0)

        on_succeeded.assert_not_awaited()
        assert not watcher.running
        assert watcher.stop_requested
        assert source.subscription.close_calls == 1

    async def test_no_callbacks_after_stop_is_observed(self) -> None:
        source = _FakeSource()
        stop_event = asyncio.Event()
        delivered: list[str] = []

        async def on_succeeded(event: PodTerminationEvent) -> bool:
            delivered.append(event.pod_name)
            stop_event.set()
            return True

        source.subscription.push(_succeeded(name="first"), _succeeded(name="second"), _failed(name="third"))

        watcher = await _start(source, on_succeeded=on_succeeded, stop_event=stop_event)
        await _drain(watcher)

        assert delivered == ["first"]
        assert source.subscription.closed

    async def test_stop_method_closes_subscription(self) -> None:
        source = _FakeSource()
        watcher = await _start(source)
        await asyncio.wait_for(watcher.stop(), timeout=_TIMEOUT)
        assert watcher.stop_requested
        assert source.subscription.closed
        assert watcher.task is not None and watcher.task.done()
