"""Success/failure suppression rules applied before a callback fires."""

from __future__ import annotations

from podnotifier.models.config import FilterConfig
from podnotifier.models.events import PodTerminationEvent, TerminationOutcome


def should_emit(event: PodTerminationEvent, config: FilterConfig) -> bool:
    """Return True if *event* passes the operator's reporting switches.

    Depends only on the event outcome and the two switches; unset switches
    follow the "neither set means both" default.
    """
    resolved = config.resolved()
    if event.outcome is TerminationOutcome.SUCCEEDED:
        return bool(resolved.report_success)
    return bool(resolved.report_failure)
