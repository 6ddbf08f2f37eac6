"""Configuration loading from environment variables and CLI overrides."""

from __future__ import annotations

import os
from typing import Any

from podnotifier.errors import ConfigError
from podnotifier.models.config import (
    DEFAULT_KUBECONFIG,
    FilterConfig,
    KubeConfig,
    LogConfig,
    MetricsConfig,
    PodNotifierConfig,
    SlackConfig,
    WatchConfig,
    WebhookConfig,
)

_VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}
_VALID_LOG_FORMATS = {"json", "console"}


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"PODNOTIFIER_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = _env(key, str(default))
    try:
        val = int(raw)
    except ValueError:
        raise ConfigError(f"PODNOTIFIER_{key} must be an integer, got {raw!r}") from None
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_log_level(value: str) -> str:
    if value.lower() not in _VALID_LOG_LEVELS:
        raise ConfigError(f"Invalid log level: {value}. Must be one of {sorted(_VALID_LOG_LEVELS)}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in _VALID_LOG_FORMATS:
        raise ConfigError(f"Invalid log format: {value}. Must be one of {sorted(_VALID_LOG_FORMATS)}")
    return value.lower()


def _validate_port(value: int) -> int:
    if value != 0 and not 1024 <= value <= 65535:
        raise ConfigError(f"Invalid metrics port: {value}. Must be 0 (disabled) or 1024-65535")
    return value


def _pick(overrides: dict[str, Any], key: str, fallback: Any) -> Any:
    """Return ``overrides[key]`` unless it is missing or None."""
    value = overrides.get(key)
    return fallback if value is None else value


def load_config(**overrides: Any) -> PodNotifierConfig:
    """Build the configuration from ``PODNOTIFIER_*`` environment variables.

    ``SLACK_API_TOKEN``, ``SLACK_CHANNEL`` and ``KUBECONFIG`` are honoured
    under their conventional names. Keyword overrides (typically CLI flags)
    win over the environment; a None override is ignored.
    """
    kubeconfig = _pick(overrides, "kubeconfig", "") or os.environ.get("KUBECONFIG", "") or DEFAULT_KUBECONFIG

    return PodNotifierConfig(
        kube=KubeConfig(
            kubeconfig=kubeconfig,
            context=_pick(overrides, "context", _env("KUBE_CONTEXT")),
            in_cluster=_pick(overrides, "in_cluster", _env_bool("IN_CLUSTER")),
        ),
        watch=WatchConfig(
            namespace=_pick(overrides, "namespace", _env("NAMESPACE")),
            label_selector=_pick(overrides, "labels", _env("LABELS")),
            dedup_capacity=_pick(overrides, "dedup_capacity", _env_int("DEDUP_CAPACITY", 4096, min_val=0)),
        ),
        filter=FilterConfig(
            report_success=_pick(overrides, "success", _env_bool("NOTIFY_SUCCESS") or None),
            report_failure=_pick(overrides, "fail", _env_bool("NOTIFY_FAIL") or None),
        ),
        slack=SlackConfig(
            api_token=_pick(overrides, "slack_api_token", "") or os.environ.get("SLACK_API_TOKEN", ""),
            channel=_pick(overrides, "slack_channel", "") or os.environ.get("SLACK_CHANNEL", ""),
        ),
        webhook=WebhookConfig(
            url=_pick(overrides, "webhook_url", _env("WEBHOOK_URL")),
        ),
        log=LogConfig(
            level=_validate_log_level(_pick(overrides, "log_level", _env("LOG_LEVEL", "info"))),
            format=_validate_log_format(_pick(overrides, "log_format", _env("LOG_FORMAT", "json"))),
        ),
        metrics=MetricsConfig(
            port=_validate_port(_pick(overrides, "metrics_port", _env_int("METRICS_PORT", 0))),
        ),
    )


def validate_config(config: PodNotifierConfig) -> None:
    """Reject configurations that cannot run.

    Raises:
        ConfigError: if the Slack token or channel is missing.
    """
    if not config.slack.api_token:
        raise ConfigError("Slack API token must be set (SLACK_API_TOKEN, --slack-api-token)")
    if not config.slack.channel:
        raise ConfigError("Slack channel must be set (SLACK_CHANNEL, --slack-channel)")
