"""Application bootstrap for k8s-pod-notifier.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: logging → K8s client → namespace → notifications → watcher
              → health/metrics server

Shutdown is graceful: the watcher's stop event is set first so no callback
fires afterwards, then components are stopped in reverse startup order.
Each component's stop error is caught and logged independently.
"""

from __future__ import annotations

import asyncio
import os
import signal
from typing import TYPE_CHECKING, Any

from podnotifier.models.config import PodNotifierConfig
from podnotifier.observability.logging import bind_watch_context, get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from podnotifier.collector.pod_watcher import PodTerminationWatcher
    from podnotifier.notifications import PodEventNotifier

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class PodNotifierApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or has
    already been stopped.
    """

    def __init__(self, config: PodNotifierConfig) -> None:
        self.config = config
        self.namespace = config.watch.namespace

        self._api_client: Any = None
        self._core_v1: Any = None
        self._notifier: PodEventNotifier | None = None
        self._watcher: PodTerminationWatcher | None = None
        self._metrics_server: Any = None

        self._stop_event = asyncio.Event()
        self._background_tasks: list[asyncio.Task[Any]] = []

        self._running = False
        self._stopped = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def watcher(self) -> PodTerminationWatcher | None:
        return self._watcher

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("podnotifier starting", version=_podnotifier_version())

        await self._start_k8s_client()
        bind_watch_context(self.namespace, self.config.watch.label_selector)
        await self._start_notifications()
        await self._start_watcher()
        await self._start_metrics_server()

        self._running = True
        print("Watching...", flush=True)
        self._log.info("podnotifier started", namespace=self.namespace or "*")

    async def _start_k8s_client(self) -> None:
        """Build an isolated ApiClient from in-cluster config or kubeconfig."""
        assert self._log is not None
        kube = self.config.kube
        self._log.debug("starting k8s client", in_cluster=kube.in_cluster)
        try:
            from kubernetes_asyncio import client as k8s_client
            from kubernetes_asyncio import config as k8s_config

            configuration = k8s_client.Configuration()
            if kube.in_cluster:
                k8s_config.load_incluster_config(client_configuration=configuration)
                self._log.info("k8s client configured from in-cluster service account")
            else:
                kubeconfig = os.path.expanduser(kube.kubeconfig)
                await k8s_config.load_kube_config(
                    config_file=kubeconfig,
                    context=kube.context or None,
                    client_configuration=configuration,
                )
                if not self.namespace:
                    self.namespace = _namespace_in_kubeconfig(k8s_config, kubeconfig, kube.context)
                self._log.info("k8s client configured from kubeconfig", kubeconfig=kubeconfig, context=kube.context)

            self._api_client = k8s_client.ApiClient(configuration=configuration)
            self._core_v1 = k8s_client.CoreV1Api(self._api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_notifications(self) -> None:
        """Build the notifier and resolve the Slack channel. Fatal on failure."""
        assert self._log is not None
        self._log.debug("starting notifications")
        try:
            from podnotifier.notifications import build_notifier

            notifier = build_notifier(self.config.slack, self.config.webhook)
            self._notifier = notifier
            await notifier.start()
            self._log.info("notifications started", channels=[c.channel_name for c in notifier.channels])
        except Exception as exc:
            raise _ComponentError("notifications", exc) from exc

    async def _start_watcher(self) -> None:
        """Open the pod watch; a subscription failure aborts startup."""
        assert self._log is not None
        assert self._notifier is not None
        self._log.debug("starting pod watcher")
        try:
            from podnotifier.collector import KubernetesPodSource, ReportedPods, watch

            self._watcher = await watch(
                KubernetesPodSource(self._core_v1),
                self.namespace,
                self.config.watch.label_selector,
                self.config.filter,
                self._notifier.on_succeeded,
                self._notifier.on_failed,
                stop_event=self._stop_event,
                reported=ReportedPods(self.config.watch.dedup_capacity),
            )
            resolved = self.config.filter.resolved()
            self._log.info(
                "pod watcher started",
                report_success=resolved.report_success,
                report_failure=resolved.report_failure,
            )
        except Exception as exc:
            raise _ComponentError("watcher", exc) from exc

    async def _start_metrics_server(self) -> None:
        """Start the uvicorn health/metrics server when a port is configured."""
        assert self._log is not None
        port = self.config.metrics.port
        if not port:
            self._log.info("metrics server disabled (metrics.port=0)")
            return
        try:
            import uvicorn

            from podnotifier.api import create_app

            uv_config = uvicorn.Config(
                app=create_app(watcher=self._watcher, config=self.config),
                host=self.config.metrics.host,
                port=port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="metrics-server")
            self._background_tasks.append(task)
            self._metrics_server = server
            self._log.info("metrics server started", port=port)
        except Exception as exc:
            # Health endpoint is optional; notifications keep flowing without it
            self._log.warning("metrics server failed to start", error=str(exc))
            self._metrics_server = None

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        """Signal the watcher to stop. Idempotent; safe from signal handlers."""
        self._stop_event.set()

    async def wait(self) -> None:
        """Block until shutdown is requested or the watch loop ends on its own."""
        if self._watcher is None or self._watcher.task is None:
            await self._stop_event.wait()
            return
        stop_wait = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({self._watcher.task, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_wait.cancel()

    @property
    def watch_ended_unexpectedly(self) -> bool:
        """True when the watch loop finished without a shutdown request."""
        watcher = self._watcher
        return watcher is not None and not watcher.running and not watcher.stop_requested

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if self._stopped or self._log is None:
            return
        self._stopped = True
        log = self._log
        log.info("podnotifier shutting down")
        self._running = False

        self._stop_event.set()
        await self._stop_component("watcher", self._watcher)

        if self._metrics_server is not None:
            self._metrics_server.should_exit = True
        if self._background_tasks:
            _, pending = await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
            for task in pending:
                task.cancel()
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_component("notifications", self._notifier)
        await self._stop_k8s_client()

        log.info("podnotifier stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _namespace_in_kubeconfig(k8s_config: Any, kubeconfig: str, context: str) -> str:
    """Namespace of the selected kubeconfig context, or "" for all namespaces."""
    contexts, active = k8s_config.list_kube_config_contexts(config_file=kubeconfig)
    selected = active
    if context:
        selected = next((c for c in contexts if c.get("name") == context), None)
    if not selected:
        return ""
    return str((selected.get("context") or {}).get("namespace") or "")


def _podnotifier_version() -> str:
    from podnotifier import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: PodNotifierConfig) -> int:
    """Run until SIGINT/SIGTERM or until the watch ends. Returns the exit code."""
    app = PodNotifierApp(config)
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.request_shutdown)

    exit_code = 0
    try:
        await app.start()
        await app.wait()
        # Checked before stop(), which sets the stop event.
        if app.watch_ended_unexpectedly:
            get_logger("app").error("pod watch ended; exiting so the process can be restarted")
            exit_code = 1
    except _ComponentError as exc:
        # A mandatory component failed; log and exit non-zero
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        return 1
    finally:
        await app.stop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    return exit_code
