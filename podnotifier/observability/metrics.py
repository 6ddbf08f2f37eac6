"""Prometheus counters.

All counters live in the default registry and are exposed by the
``/metrics`` route of the health server.
"""

from __future__ import annotations

from prometheus_client import Counter

watch_notifications_total = Counter(
    "podnotifier_watch_notifications_total",
    "Raw pod notifications received from the watch stream.",
    ["type"],
)

pod_terminations_total = Counter(
    "podnotifier_pod_terminations_total",
    "Pod terminations classified from the watch stream.",
    ["outcome"],
)

pod_terminations_suppressed_total = Counter(
    "podnotifier_pod_terminations_suppressed_total",
    "Classified terminations that were not forwarded to a callback.",
    ["reason"],
)

callback_failures_total = Counter(
    "podnotifier_callback_failures_total",
    "Termination callbacks that raised or reported a delivery failure.",
    ["outcome"],
)

notifications_total = Counter(
    "podnotifier_notifications_total",
    "Messages handed to notification channels.",
    ["channel", "success"],
)
