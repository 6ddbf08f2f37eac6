"""Core pod snapshot and termination event data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class WatchEventType(StrEnum):
    """Kind of a watch notification as reported by the API server."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


class PodPhase(StrEnum):
    """Pod lifecycle phase (``status.phase``)."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class TerminationOutcome(StrEnum):
    """Classification of a terminal pod."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ContainerTermination:
    """The ``state.terminated`` record of a stopped container."""

    exit_code: int
    reason: str = ""
    message: str = ""
    finished_at: datetime | None = None


@dataclass(frozen=True)
class ContainerStatus:
    """Per-container status; ``terminated`` is None until the container stops."""

    name: str
    terminated: ContainerTermination | None = None


@dataclass(frozen=True)
class PodSnapshot:
    """Read-only view of the pod fields the detector needs."""

    namespace: str
    name: str
    phase: str
    uid: str = ""
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None
    container_statuses: tuple[ContainerStatus, ...] = ()


@dataclass(frozen=True)
class RawPodNotification:
    """One notification from a watch subscription.

    ``pod`` is None when the source delivered an empty payload, which marks
    the end of the stream.
    """

    type: WatchEventType
    pod: PodSnapshot | None
    observed_at: datetime


@dataclass(frozen=True)
class PodTerminationEvent:
    """A single pod termination, produced at most once per pod lifetime.

    Immutable: built by the classifier, handed to the filter and then to a
    callback, and discarded.
    """

    outcome: TerminationOutcome
    namespace: str
    pod_name: str
    started_at: datetime
    finished_at: datetime
    exit_code: int = 0
    reason: str = ""
    message: str = ""
    container_name: str = ""
    uid: str = field(default="", compare=False)

    @property
    def succeeded(self) -> bool:
        return self.outcome is TerminationOutcome.SUCCEEDED
