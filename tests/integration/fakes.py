"""In-memory fakes for kuberelay pipeline scenarios.

FakeCluster plays both the notification source and the watermark store:
emitting an occurrence updates the stored event record and queues a watch
notification, and a watermark patch queues the MODIFIED notification a real
API server would send back. ``await cluster.drain()`` waits until every
queued notification has been handled.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any

from kuberelay.collector.source import ADDED, MODIFIED, Notification
from kuberelay.errors import MetadataFetchError
from kuberelay.models.config import DEFAULT_WATERMARK_ANNOTATION
from kuberelay.models.events import EnrichedEvent, ObjectReference, RawEvent

WATERMARK = DEFAULT_WATERMARK_ANNOTATION


def make_event_dict(
    name: str = "web-1.17f3a2",
    count: int = 1,
    watermark: str | None = None,
    namespace: str = "default",
    reason: str = "BackOff",
    message: str = "Back-off restarting failed container",
    kind: str = "Pod",
    obj_name: str = "web-1",
    obj_uid: str = "pod-uid-1",
) -> dict[str, Any]:
    annotations = {} if watermark is None else {WATERMARK: watermark}
    return {
        "apiVersion": "v1",
        "kind": "Event",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"event-uid-{name}",
            "resourceVersion": "1",
            "annotations": annotations,
        },
        "reason": reason,
        "message": message,
        "type": "Warning",
        "count": count,
        "involvedObject": {
            "apiVersion": "v1",
            "kind": kind,
            "namespace": namespace,
            "name": obj_name,
            "uid": obj_uid,
        },
        "source": {"component": "kubelet"},
    }


def make_raw(**kwargs: Any) -> RawEvent:
    return RawEvent.from_dict(make_event_dict(**kwargs))


class FakeCluster:
    """In-memory event records with a queue-backed watch."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.queue: asyncio.Queue[Notification] = asyncio.Queue()
        self.writes: list[tuple[str, int]] = []
        self.write_error: Exception | None = None
        self.list_error: Exception | None = None
        self.closed = False
        self._rv = 100

    def _next_rv(self) -> str:
        self._rv += 1
        return str(self._rv)

    def emit(self, name: str = "web-1.17f3a2", count: int = 1, **kwargs: Any) -> None:
        """Record an occurrence of *name*, keeping any persisted annotations."""
        record = self.records.get(name)
        event_type = MODIFIED if record is not None else ADDED
        if record is None:
            record = make_event_dict(name=name, count=count, **kwargs)
        else:
            record = copy.deepcopy(record)
            record["count"] = count
        record["metadata"]["resourceVersion"] = self._next_rv()
        self.records[name] = record
        self.queue.put_nowait(
            Notification(event_type, RawEvent.from_dict(copy.deepcopy(record)), record["metadata"]["resourceVersion"])
        )

    async def drain(self, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self.queue.join(), timeout)

    # NotificationSource

    async def list(self) -> tuple[list[RawEvent], str]:
        if self.list_error is not None:
            raise self.list_error
        items = [RawEvent.from_dict(copy.deepcopy(r)) for r in self.records.values()]
        return items, str(self._rv)

    async def watch(self, resource_version: str):  # type: ignore[no-untyped-def]
        while True:
            notification = await self.queue.get()
            try:
                yield notification
            finally:
                self.queue.task_done()

    async def close(self) -> None:
        self.closed = True

    # WatermarkStore

    async def write(self, raw: RawEvent, count: int) -> None:
        self.writes.append((raw.name, count))
        if self.write_error is not None:
            raise self.write_error
        record = copy.deepcopy(self.records[raw.name])
        record["metadata"]["annotations"][WATERMARK] = str(count)
        record["metadata"]["resourceVersion"] = self._next_rv()
        self.records[raw.name] = record
        self.queue.put_nowait(
            Notification(MODIFIED, RawEvent.from_dict(copy.deepcopy(record)), record["metadata"]["resourceVersion"])
        )

    def watermark(self, name: str) -> str | None:
        return self.records[name]["metadata"]["annotations"].get(WATERMARK)


class FakeFetcher:
    """MetadataFetcher over a fixed object table; unknown objects are not found."""

    def __init__(self, objects: dict[str, dict[str, Any]] | None = None) -> None:
        self.objects = objects or {}
        self.calls: list[ObjectReference] = []

    async def fetch(self, ref: ObjectReference) -> dict[str, Any]:
        self.calls.append(ref)
        await asyncio.sleep(0)
        metadata = self.objects.get(f"{ref.kind}/{ref.namespace}/{ref.name}")
        if metadata is None:
            raise MetadataFetchError(ref.key(), "not found")
        return copy.deepcopy(metadata)


class RecordingHandler:
    def __init__(self) -> None:
        self.events: list[EnrichedEvent] = []

    async def __call__(self, event: EnrichedEvent) -> None:
        self.events.append(event)

    @property
    def counts(self) -> list[int]:
        return [e.event.count for e in self.events]


