"""Dispatch loop: one background task per pod watch subscription.

The task waits on whichever comes first, the next raw notification or the
stop event, and runs each notification through
classify -> reported-pod check -> filter -> callback before reading the
next one. Callbacks run in-line, so a slow sink delays later notifications
from the same subscription but never reorders them.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass

from podnotifier.collector.classifier import classify
from podnotifier.collector.dedup import ReportedPods
from podnotifier.collector.filter import should_emit
from podnotifier.collector.source import Subscription, WatchSource
from podnotifier.models.config import FilterConfig
from podnotifier.models.events import PodTerminationEvent, RawPodNotification, WatchEventType
from podnotifier.observability.logging import get_logger
from podnotifier.observability.metrics import (
    callback_failures_total,
    pod_terminations_suppressed_total,
    pod_terminations_total,
    watch_notifications_total,
)

_logger = get_logger("collector.pod_watcher")

# A callback returns False (or raises) to signal that delivery failed. Any
# other return value, including None, counts as success.
TerminationCallback = Callable[[PodTerminationEvent], Awaitable[bool | None] | bool | None]


@dataclass
class WatchStats:
    """Counters for one watch subscription."""

    received: int = 0
    succeeded: int = 0
    failed: int = 0
    filtered: int = 0
    duplicates: int = 0
    callback_failures: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class PodTerminationWatcher:
    """Owns one subscription and the task that drains it.

    Args:
        source:         Watch source the subscription is opened on.
        config:         Success/failure reporting switches.
        on_succeeded:   Called with every forwarded success.
        on_failed:      Called with every forwarded failure.
        namespace:      Namespace to watch; empty for all namespaces.
        label_selector: Label selector string passed to the source.
        stop_event:     Cancellation signal shared with the caller. A fresh
                        event is created when omitted.
        reported:       At-most-once guard; defaults to ReportedPods().
    """

    def __init__(
        self,
        source: WatchSource,
        config: FilterConfig,
        on_succeeded: TerminationCallback,
        on_failed: TerminationCallback,
        *,
        namespace: str = "",
        label_selector: str = "",
        stop_event: asyncio.Event | None = None,
        reported: ReportedPods | None = None,
    ) -> None:
        self._source = source
        self._config = config
        self._on_succeeded = on_succeeded
        self._on_failed = on_failed
        self._namespace = namespace
        self._label_selector = label_selector
        self._stop_event = stop_event or asyncio.Event()
        self._reported = reported if reported is not None else ReportedPods()

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._error: BaseException | None = None
        self._stats = WatchStats()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the subscription and launch the background task.

        Raises:
            WatchSubscriptionError: the subscription could not be opened.
                                    No task is started in that case.
        """
        if self._task is not None:
            return
        subscription = await self._source.subscribe(self._namespace, self._label_selector)
        self._running = True
        self._task = asyncio.create_task(self._run(subscription), name="pod-termination-watch")

    async def stop(self) -> None:
        """Signal the loop to stop and wait until the subscription is closed."""
        self._stop_event.set()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def wait(self) -> None:
        """Block until the background task has finished for any reason."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def error(self) -> BaseException | None:
        """Exception that ended the loop, if the stream failed while reading."""
        return self._error

    @property
    def stats(self) -> WatchStats:
        return self._stats

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run(self, subscription: Subscription) -> None:
        stop_wait = asyncio.ensure_future(self._stop_event.wait())
        try:
            while True:
                stopped, notification = await self._next_or_stop(subscription, stop_wait)
                if stopped:
                    _logger.info("pod_watch_stopped", **self._stats.as_dict())
                    return
                if notification is None or notification.pod is None:
                    _logger.info("pod_watch_stream_closed", **self._stats.as_dict())
                    return
                await self._process(notification)
        except Exception as exc:
            self._error = exc
            _logger.error("pod_watch_stream_failed", error=str(exc), error_type=type(exc).__name__)
        finally:
            self._running = False
            stop_wait.cancel()
            await subscription.close()

    async def _next_or_stop(
        self,
        subscription: Subscription,
        stop_wait: asyncio.Future[object],
    ) -> tuple[bool, RawPodNotification | None]:
        """Wait for the next notification or the stop signal.

        Returns ``(True, None)`` once stop is observed, even when a
        notification arrived at the same time.
        """
        if self._stop_event.is_set():
            return True, None

        read = asyncio.ensure_future(subscription.next())
        try:
            await asyncio.wait({read, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not read.done():
                read.cancel()
                await asyncio.gather(read, return_exceptions=True)

        if self._stop_event.is_set():
            # A notification that raced the stop signal is dropped.
            if not read.cancelled():
                read.exception()
            return True, None
        return False, read.result()

    async def _process(self, notification: RawPodNotification) -> None:
        self._stats.received += 1
        watch_notifications_total.labels(type=notification.type.value).inc()

        pod = notification.pod
        if notification.type is WatchEventType.DELETED and pod is not None:
            self._reported.forget(pod.namespace, pod.name, pod.uid)
            return

        event = classify(notification)
        if event is None:
            return
        pod_terminations_total.labels(outcome=event.outcome.value).inc()

        if not self._reported.mark(event):
            self._stats.duplicates += 1
            pod_terminations_suppressed_total.labels(reason="duplicate").inc()
            _logger.debug("pod_termination_already_reported", namespace=event.namespace, pod=event.pod_name)
            return

        if not should_emit(event, self._config):
            self._stats.filtered += 1
            pod_terminations_suppressed_total.labels(reason="filtered").inc()
            _logger.debug(
                "pod_termination_filtered",
                namespace=event.namespace,
                pod=event.pod_name,
                outcome=event.outcome.value,
            )
            return

        if self._stop_event.is_set():
            return

        if event.succeeded:
            self._stats.succeeded += 1
            await self._invoke(self._on_succeeded, event)
        else:
            self._stats.failed += 1
            await self._invoke(self._on_failed, event)

    async def _invoke(self, callback: TerminationCallback, event: PodTerminationEvent) -> None:
        """Run *callback*; a failure is logged and never stops the loop."""
        try:
            result = callback(event)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self._record_callback_failure(event)
            _logger.error(
                "callback_failed",
                namespace=event.namespace,
                pod=event.pod_name,
                outcome=event.outcome.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return

        if result is False:
            self._record_callback_failure(event)
            _logger.warning(
                "callback_reported_failure",
                namespace=event.namespace,
                pod=event.pod_name,
                outcome=event.outcome.value,
            )

    def _record_callback_failure(self, event: PodTerminationEvent) -> None:
        self._stats.callback_failures += 1
        callback_failures_total.labels(outcome=event.outcome.value).inc()


async def watch(
    source: WatchSource,
    namespace: str,
    label_selector: str,
    config: FilterConfig,
    on_succeeded: TerminationCallback,
    on_failed: TerminationCallback,
    stop_event: asyncio.Event | None = None,
    reported: ReportedPods | None = None,
) -> PodTerminationWatcher:
    """Open a pod watch and start dispatching terminations in the background.

    Returns the running PodTerminationWatcher. Setting *stop_event* (or
    calling ``watcher.stop()``) ends the loop and closes the subscription.

    Raises:
        WatchSubscriptionError: the subscription could not be opened.
    """
    watcher = PodTerminationWatcher(
        source,
        config,
        on_succeeded,
        on_failed,
        namespace=namespace,
        label_selector=label_selector,
        stop_event=stop_event,
        reported=reported,
    )
    await watcher.start()
    return watcher
