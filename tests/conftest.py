"""Shared Kubernetes fakes for unit and integration tests.

FakeCoreV1Api answers the subscribe-time list call with a pod list and each
watch call with a scripted streaming response, so the real
kubernetes_asyncio ``Watch`` parses raw JSON lines just as it would from the
API server.
"""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any


def watch_line(type_: str, obj: dict[str, Any]) -> bytes:
    """One newline-terminated watch event as sent on the wire."""
    return (json.dumps({"type": type_, "object": obj}) + "\n").encode()


class FakeWatchResponse:
    """Streaming body that returns scripted lines, then ends.

    An exception in *lines* is raised from readline(). With *idle* given the
    body never ends: once the lines are read, *idle* is set and readline()
    blocks like a quiet watch.
    """

    def __init__(self, lines: list[bytes | Exception], idle: asyncio.Event | None = None) -> None:
        self._lines = list(lines)
        self._idle = idle
        self.content = SimpleNamespace(readline=self._readline)
        self.closed = False
        self.released = False

    async def _readline(self) -> bytes:
        if self._lines:
            line = self._lines.pop(0)
            if isinstance(line, Exception):
                raise line
            return line
        if self._idle is not None:
            self._idle.set()
            await asyncio.Event().wait()
        return b""

    def close(self) -> None:
        self.closed = True

    def release(self) -> None:
        self.released = True


class FakeCoreV1Api:
    """CoreV1Api stand-in serving one scripted response per watch request.

    Requests past the scripted ones get a response that stays open with no
    events; ``idle`` is set once the watch is waiting on it.
    """

    def __init__(
        self,
        *responses: list[bytes | Exception],
        resource_version: str = "100",
        list_error: Exception | None = None,
    ) -> None:
        self._scripted = [FakeWatchResponse(lines) for lines in responses]
        self._pod_list = SimpleNamespace(metadata=SimpleNamespace(resource_version=resource_version))
        self.list_error = list_error
        self.list_calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.watch_calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.responses: list[FakeWatchResponse] = []
        self.idle = asyncio.Event()

    async def list_namespaced_pod(self, namespace: str, **kwargs: Any) -> Any:
        return self._call((namespace,), kwargs)

    async def list_pod_for_all_namespaces(self, **kwargs: Any) -> Any:
        return self._call((), kwargs)

    def _call(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        if kwargs.get("watch"):
            self.watch_calls.append((args, kwargs))
            resp = self._scripted.pop(0) if self._scripted else FakeWatchResponse([], idle=self.idle)
            self.responses.append(resp)
            return resp
        self.list_calls.append((args, kwargs))
        if self.list_error is not None:
            raise self.list_error
        return self._pod_list
