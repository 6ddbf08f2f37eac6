"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_KUBECONFIG = "~/.kube/config"


@dataclass
class KubeConfig:
    """Kubernetes client configuration."""

    kubeconfig: str = DEFAULT_KUBECONFIG
    context: str = ""
    in_cluster: bool = False


@dataclass
class WatchConfig:
    """Which pods to watch.

    An empty namespace means "all namespaces" once resolution has run.
    """

    namespace: str = ""
    label_selector: str = ""
    dedup_capacity: int = 4096


@dataclass(frozen=True)
class FilterConfig:
    """Success/failure reporting switches.

    ``None`` means the operator did not set the switch, and an explicit value
    is always honored. An unset switch takes the opposite of the other one, so
    the CLI "only" flags hold: ``--fail`` alone reports failures only. When
    neither is set both kinds are reported; both ``False`` reports nothing.
    """

    report_success: bool | None = None
    report_failure: bool | None = None

    def resolved(self) -> FilterConfig:
        """Return a copy with both switches set to explicit booleans."""
        success, failure = self.report_success, self.report_failure
        if success is None and failure is None:
            return FilterConfig(report_success=True, report_failure=True)
        if success is None:
            success = not failure
        if failure is None:
            failure = not success
        return FilterConfig(report_success=success, report_failure=failure)


@dataclass
class SlackConfig:
    """Slack Web API credentials."""

    api_token: str = ""
    channel: str = ""
    timeout_seconds: float = 10.0


@dataclass
class WebhookConfig:
    """Optional generic JSON webhook sink."""

    url: str = ""


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class MetricsConfig:
    """Health and Prometheus endpoint. Port 0 disables the server."""

    port: int = 0
    host: str = "0.0.0.0"


@dataclass
class PodNotifierConfig:
    """Top-level configuration."""

    kube: KubeConfig = field(default_factory=KubeConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    log: LogConfig = field(default_factory=LogConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
