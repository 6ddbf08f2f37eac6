"""Entry point for `python -m podnotifier`.

Usage:
    python -m podnotifier --slack-channel builds --fail
"""

from __future__ import annotations

from podnotifier.cli import cli

cli(prog_name="k8s-pod-notifier")
