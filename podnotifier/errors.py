"""Exception hierarchy for k8s-pod-notifier."""

from __future__ import annotations


class PodNotifierError(Exception):
    """Base class for all errors raised by podnotifier."""


class ConfigError(PodNotifierError):
    """Raised when the configuration is invalid or a credential is missing."""


class WatchSubscriptionError(PodNotifierError):
    """Raised when a pod watch subscription cannot be opened.

    Surfaced synchronously from ``watch()``; no background task is started.
    """

    def __init__(self, namespace: str, label_selector: str, cause: Exception) -> None:
        scope = namespace or "<all namespaces>"
        super().__init__(f"cannot create pod watcher for {scope} (labels={label_selector!r}): {cause}")
        self.namespace = namespace
        self.label_selector = label_selector
        self.cause = cause


class SlackError(PodNotifierError):
    """Raised when the Slack Web API rejects a request needed at startup."""
