"""Click entry point: parse flags, validate configuration, run the watcher."""

from __future__ import annotations

import asyncio

import click

from podnotifier import __version__
from podnotifier.app import main as run_app
from podnotifier.config import load_config, validate_config
from podnotifier.errors import ConfigError


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--context", "context", default=None, help="Kubernetes context to use (default: current context).")
@click.option("--in-cluster", "in_cluster", is_flag=True, help="Use the in-cluster service account.")
@click.option("--kubeconfig", default=None, help="Path to kubeconfig (env: KUBECONFIG, default: ~/.kube/config).")
@click.option("-l", "--labels", default=None, help="Label selector for the watched pods, e.g. app=batch.")
@click.option("-n", "--namespace", default=None, help="Namespace to watch (default: the context namespace).")
@click.option("--fail", "fail", is_flag=True, help="Notify on failed pods.")
@click.option("--success", "success", is_flag=True, help="Notify on succeeded pods.")
@click.option("--slack-api-token", default=None, help="Slack API token (env: SLACK_API_TOKEN).")
@click.option("--slack-channel", default=None, help="Slack channel name or ID (env: SLACK_CHANNEL).")
@click.option("--webhook-url", default=None, help="Also POST each termination to this URL.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (env: PODNOTIFIER_LOG_LEVEL, default: info).",
)
@click.option("--metrics-port", type=int, default=None, help="Port for /healthz and /metrics; 0 disables.")
@click.version_option(version=__version__, prog_name="k8s-pod-notifier")
def cli(
    context: str | None,
    in_cluster: bool,
    kubeconfig: str | None,
    labels: str | None,
    namespace: str | None,
    fail: bool,
    success: bool,
    slack_api_token: str | None,
    slack_channel: str | None,
    webhook_url: str | None,
    log_level: str | None,
    metrics_port: int | None,
) -> None:
    """Watch Kubernetes pods and post a Slack message when one terminates.

    Without --fail or --success both outcomes are reported.
    """
    try:
        config = load_config(
            context=context,
            in_cluster=in_cluster or None,
            kubeconfig=kubeconfig,
            labels=labels,
            namespace=namespace,
            fail=fail or None,
            success=success or None,
            slack_api_token=slack_api_token,
            slack_channel=slack_channel,
            webhook_url=webhook_url,
            log_level=log_level,
            metrics_port=metrics_port,
        )
        validate_config(config)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    exit_code = asyncio.run(run_app(config))
    if exit_code:
        raise SystemExit(exit_code)
