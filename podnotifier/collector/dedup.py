"""Bounded record of pods whose termination has already been reported.

The watch stream keeps redelivering a terminal pod on every later
modification (finalizers, label changes, status heartbeats). ReportedPods
turns that into at-most-once delivery per process lifetime. State is held
in-process only; a restart forgets everything.
"""

from __future__ import annotations

from collections import OrderedDict

from podnotifier.models.events import PodTerminationEvent

_DEFAULT_CAPACITY = 4096

PodKey = tuple[str, str, str]


def pod_key(event: PodTerminationEvent) -> PodKey:
    """Key a termination by pod identity.

    The UID separates a recreated pod from an earlier pod with the same name.
    """
    return (event.namespace, event.pod_name, event.uid)


class ReportedPods:
    """LRU set of reported pod keys.

    Args:
        capacity: Maximum number of keys remembered. The oldest key is
                  evicted first. ``0`` disables tracking, so every
                  classified event counts as new.
    """

    def __init__(self, capacity: int = _DEFAULT_CAPACITY) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self._capacity = capacity
        self._keys: OrderedDict[PodKey, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    @property
    def capacity(self) -> int:
        return self._capacity

    def mark(self, event: PodTerminationEvent) -> bool:
        """Record *event*'s pod. Return True if it had not been reported yet."""
        if self._capacity == 0:
            return True
        key = pod_key(event)
        if key in self._keys:
            self._keys.move_to_end(key)
            return False
        self._keys[key] = None
        while len(self._keys) > self._capacity:
            self._keys.popitem(last=False)
        return True

    def forget(self, namespace: str, pod_name: str, uid: str = "") -> None:
        """Drop a pod so its next termination is reported again."""
        self._keys.pop((namespace, pod_name, uid), None)
