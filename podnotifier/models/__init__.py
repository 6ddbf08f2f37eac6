"""Core data structures for k8s-pod-notifier."""

from podnotifier.models.config import (
    FilterConfig,
    KubeConfig,
    LogConfig,
    MetricsConfig,
    PodNotifierConfig,
    SlackConfig,
    WatchConfig,
    WebhookConfig,
)
from podnotifier.models.events import (
    ContainerStatus,
    ContainerTermination,
    PodPhase,
    PodSnapshot,
    PodTerminationEvent,
    RawPodNotification,
    TerminationOutcome,
    WatchEventType,
)

__all__ = [
    "ContainerStatus",
    "ContainerTermination",
    "FilterConfig",
    "KubeConfig",
    "LogConfig",
    "MetricsConfig",
    "PodNotifierConfig",
    "PodPhase",
    "PodSnapshot",
    "PodTerminationEvent",
    "RawPodNotification",
    "SlackConfig",
    "TerminationOutcome",
    "WatchConfig",
    "WatchEventType",
    "WebhookConfig",
]
