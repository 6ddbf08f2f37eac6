"""Collector package for k8s-pod-notifier.

Turns a Kubernetes pod watch stream into pod termination callbacks.

Submodules
----------
source      -- WatchSource/Subscription contract, KubernetesPodSource.
classifier  -- classify(): raw notification -> PodTerminationEvent | None.
filter      -- should_emit(): success/failure reporting switches.
dedup       -- ReportedPods: bounded at-most-once guard per pod.
pod_watcher -- PodTerminationWatcher and watch(): the dispatch loop.
"""

from podnotifier.collector.classifier import classify
from podnotifier.collector.dedup import ReportedPods
from podnotifier.collector.filter import should_emit
from podnotifier.collector.pod_watcher import PodTerminationWatcher, WatchStats, watch
from podnotifier.collector.source import KubernetesPodSource, Subscription, WatchSource

__all__ = [
    "KubernetesPodSource",
    "PodTerminationWatcher",
    "ReportedPods",
    "Subscription",
    "WatchSource",
    "WatchStats",
    "classify",
    "should_emit",
    "watch",
]
