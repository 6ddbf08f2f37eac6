"""Termination classifier.

Turns one raw pod notification into at most one PodTerminationEvent. The
decision is made from the snapshot alone: phase plus the first container
status that carries a terminated record. No per-pod state is kept here.
"""

from __future__ import annotations

from podnotifier.models.events import (
    ContainerStatus,
    ContainerTermination,
    PodPhase,
    PodTerminationEvent,
    RawPodNotification,
    TerminationOutcome,
    WatchEventType,
)


def classify(notification: RawPodNotification) -> PodTerminationEvent | None:
    """Classify *notification* as a pod success, a pod failure, or nothing.

    Returns None when the notification is not a modification, carries no
    pod, belongs to a pod that is being deleted, is not in a terminal phase,
    or (for failures) has no terminated container to read the exit code from.
    """
    if notification.type != WatchEventType.MODIFIED:
        return None

    pod = notification.pod
    if pod is None or pod.deletion_timestamp is not None:
        return None

    started_at = pod.creation_timestamp or notification.observed_at
    first = _first_terminated(pod.container_statuses)

    if pod.phase == PodPhase.SUCCEEDED:
        finished_at = notification.observed_at
        container_name = ""
        if first is not None:
            container_name, terminated = first
            finished_at = terminated.finished_at or notification.observed_at
        return PodTerminationEvent(
            outcome=TerminationOutcome.SUCCEEDED,
            namespace=pod.namespace,
            pod_name=pod.name,
            started_at=started_at,
            finished_at=finished_at,
            exit_code=0,
            reason="",
            container_name=container_name,
            uid=pod.uid,
        )

    if pod.phase == PodPhase.FAILED:
        # Not enough detail yet to report an exit code.
        if first is None:
            return None
        container_name, terminated = first
        return PodTerminationEvent(
            outcome=TerminationOutcome.FAILED,
            namespace=pod.namespace,
            pod_name=pod.name,
            started_at=started_at,
            finished_at=terminated.finished_at or notification.observed_at,
            exit_code=terminated.exit_code,
            reason=terminated.reason,
            message=terminated.message,
            container_name=container_name,
            uid=pod.uid,
        )

    return None


def _first_terminated(statuses: tuple[ContainerStatus, ...]) -> tuple[str, ContainerTermination] | None:
    for status in statuses:
        if status.terminated is not None:
            return status.name, status.terminated
    return None
