"""k8s-pod-notifier command-line interface.

Exposes:
    cli -- Click command entry point (registered as ``k8s-pod-notifier`` script).
"""

from podnotifier.cli.main import cli

__all__ = ["cli"]
